"""
Permission Engine

Pure rules for who may chat with whom. No I/O, no state beyond the
static rule tables it is constructed with.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.access import (
    ChatAccessRule,
    ChatPermission,
    GroupDefinition,
    PermissionCode,
    DEFAULT_ACCESS_RULES,
    DEFAULT_GROUPS,
)
from ..models.chat_room import ChatCategory
from ..models.user import User, UserRole

logger = logging.getLogger("chatcore.services.permissions")


class PermissionEngine:
    """
    Evaluates direct-chat and group rules.

    Direct rules are symmetric and keyed by role pair; a rule whose target
    is UserRole.ANY matches any counterpart. An exact pair takes precedence
    over a wildcard.
    """

    def __init__(
        self,
        rules: Iterable[ChatAccessRule] = DEFAULT_ACCESS_RULES,
        groups: Iterable[GroupDefinition] = DEFAULT_GROUPS,
    ):
        self.rules: Tuple[ChatAccessRule, ...] = tuple(rules)
        self.groups: Dict[ChatCategory, GroupDefinition] = {
            g.chat_category: g for g in groups
        }

        self._exact: Dict[frozenset, ChatAccessRule] = {}
        self._wildcard: Dict[UserRole, ChatAccessRule] = {}
        for rule in self.rules:
            if rule.is_wildcard:
                owner = rule.target_role if rule.source_role == UserRole.ANY else rule.source_role
                self._wildcard[owner] = rule
            else:
                self._exact[frozenset((rule.source_role, rule.target_role))] = rule

    def find_rule(self, role_a: UserRole, role_b: UserRole) -> Optional[ChatAccessRule]:
        """Rule covering a role pair in either direction"""
        rule = self._exact.get(frozenset((role_a, role_b)))
        if rule is not None:
            return rule
        return self._wildcard.get(role_a) or self._wildcard.get(role_b)

    def can_direct_chat(self, source: User, target: User) -> ChatPermission:
        """Whether source and target may open a direct conversation"""
        rule = self.find_rule(source.role, target.role)
        if rule is None:
            return ChatPermission.of(PermissionCode.ROLE_PAIR_NOT_PERMITTED)

        if rule.requires_same_specialization:
            if not source.specializations or not target.specializations:
                return ChatPermission.of(PermissionCode.SPECIALIZATION_MISSING)
            if not source.shares_specialization(target):
                return ChatPermission.of(PermissionCode.SPECIALIZATION_MISMATCH)

        if rule.requires_approval:
            return ChatPermission.of(PermissionCode.APPROVAL_REQUIRED)

        return ChatPermission.of(PermissionCode.ALLOWED)

    def group_definition(self, category: ChatCategory) -> Optional[GroupDefinition]:
        return self.groups.get(category)

    def can_join_group(self, user: User, group: GroupDefinition) -> bool:
        return group.all_members_allowed or user.role in group.allowed_roles

    def can_post_in_group(self, user: User, group: GroupDefinition) -> bool:
        """Membership alone does not grant posting in a read-only group"""
        if group.is_read_only:
            return user.role in group.allowed_roles
        return self.can_join_group(user, group)

    def available_groups(self, user: User) -> List[GroupDefinition]:
        """Groups the user qualifies for"""
        return [g for g in self.groups.values() if self.can_join_group(user, g)]

    def eager_counterpart_roles(self, role: UserRole) -> List[UserRole]:
        """Roles whose direct rooms with `role` are created at setup"""
        result = []
        for rule in self.rules:
            if not rule.auto_provision or rule.requires_approval or rule.is_wildcard:
                continue
            other = rule.counterpart(role)
            if other is not None and other not in result:
                result.append(other)
        return result

    def direct_chat_counterparts(self, role: UserRole) -> List[dict]:
        """Human-readable summary of the direct chat rules that apply to a role"""
        summary = []
        for rule in self.rules:
            other = rule.counterpart(role)
            if other is None and UserRole.ANY in (rule.source_role, rule.target_role):
                other = rule.source_role if rule.target_role == UserRole.ANY else rule.target_role
            if other is None:
                continue
            summary.append({
                "counterpart_role": other.value,
                "requires_same_specialization": rule.requires_same_specialization,
                "requires_approval": rule.requires_approval,
                "description": rule.description,
            })
        return summary
