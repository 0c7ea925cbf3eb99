"""
Access Models

Static chat access configuration (direct-chat rules, group definitions)
and the result type returned by the permission engine.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from .chat_room import ChatCategory
from .user import UserRole


class PermissionCode(str, Enum):
    """Distinguishable outcome of a direct-chat check"""
    ALLOWED = "allowed"
    APPROVAL_REQUIRED = "approval_required"
    ROLE_PAIR_NOT_PERMITTED = "role_pair_not_permitted"
    SPECIALIZATION_MISSING = "specialization_missing"
    SPECIALIZATION_MISMATCH = "specialization_mismatch"


PERMISSION_MESSAGES = {
    PermissionCode.ALLOWED: None,
    PermissionCode.APPROVAL_REQUIRED: "Requires approval from the project manager",
    PermissionCode.ROLE_PAIR_NOT_PERMITTED: "Role pair not permitted",
    PermissionCode.SPECIALIZATION_MISSING: "Specialization is not set for one of the users",
    PermissionCode.SPECIALIZATION_MISMATCH: "Direct chat is only allowed within the same specialization",
}


@dataclass(frozen=True)
class ChatPermission:
    """
    Outcome of can_direct_chat.

    A denial is a normal result, never an exception. code lets the caller
    render distinct guidance; reason is the human-readable text.
    """
    allowed: bool
    requires_approval: bool = False
    code: PermissionCode = PermissionCode.ALLOWED
    reason: Optional[str] = None

    @classmethod
    def of(cls, code: PermissionCode) -> "ChatPermission":
        return cls(
            allowed=code in (PermissionCode.ALLOWED, PermissionCode.APPROVAL_REQUIRED),
            requires_approval=code == PermissionCode.APPROVAL_REQUIRED,
            code=code,
            reason=PERMISSION_MESSAGES[code],
        )

    @property
    def is_immediate(self) -> bool:
        """Allowed without going through the approval flow"""
        return self.allowed and not self.requires_approval

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "requires_approval": self.requires_approval,
            "code": self.code.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ChatAccessRule:
    """
    Direct chat rule between two roles.

    Rules are symmetric: (a, b) also covers (b, a). target_role may be
    UserRole.ANY to match every role.
    auto_provision marks pairs whose rooms are created eagerly at setup.
    """
    source_role: UserRole
    target_role: UserRole
    requires_same_specialization: bool = False
    requires_approval: bool = False
    auto_provision: bool = False
    description: str = ""

    @property
    def is_wildcard(self) -> bool:
        return UserRole.ANY in (self.source_role, self.target_role)

    def counterpart(self, role: UserRole) -> Optional[UserRole]:
        """The role on the other side of this rule from `role`, if any"""
        if self.source_role == role:
            return self.target_role
        if self.target_role == role:
            return self.source_role
        return None


@dataclass(frozen=True)
class GroupDefinition:
    """Static group chat definition keyed by category"""
    chat_category: ChatCategory
    name: str
    allowed_roles: FrozenSet[UserRole]
    all_members_allowed: bool = False
    is_read_only: bool = False
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "chat_category": self.chat_category.value,
            "name": self.name,
            "description": self.description,
            "allowed_roles": sorted(r.value for r in self.allowed_roles),
            "all_members_allowed": self.all_members_allowed,
            "is_read_only": self.is_read_only,
        }


DEFAULT_ACCESS_RULES: Tuple[ChatAccessRule, ...] = (
    ChatAccessRule(
        UserRole.PROVINCIAL_OFFICER,
        UserRole.COORDINATION_OFFICER,
        auto_provision=True,
        description="Provincial officer <-> coordination officer",
    ),
    ChatAccessRule(
        UserRole.SUPERVISOR,
        UserRole.TRAINER,
        requires_same_specialization=True,
        description="Supervisor <-> trainer (same specialization only)",
    ),
    ChatAccessRule(
        UserRole.PROJECT_MANAGER,
        UserRole.ANY,
        requires_approval=True,
        description="Project manager <-> any user (requires approval)",
    ),
)

DEFAULT_GROUPS: Tuple[GroupDefinition, ...] = (
    GroupDefinition(
        ChatCategory.ANNOUNCEMENT,
        name="Official Announcements",
        allowed_roles=frozenset({
            UserRole.COORDINATION_OFFICER,
            UserRole.BOARD_MEMBER,
            UserRole.PROJECT_MANAGER,
        }),
        all_members_allowed=True,
        is_read_only=True,
        description="Official announcements for all users",
    ),
    GroupDefinition(
        ChatCategory.COORDINATION,
        name="Development Coordination",
        allowed_roles=frozenset({
            UserRole.COORDINATION_OFFICER,
            UserRole.PROVINCIAL_OFFICER,
            UserRole.BOARD_MEMBER,
        }),
        description="Administrative coordination between development officers",
    ),
    GroupDefinition(
        ChatCategory.TRAINING_TEAM,
        name="Training Team",
        allowed_roles=frozenset({
            UserRole.TRAINER,
            UserRole.SUPERVISOR,
            UserRole.PROJECT_MANAGER,
            UserRole.BOARD_MEMBER,
        }),
        description="Trainers and supervisors",
    ),
)
