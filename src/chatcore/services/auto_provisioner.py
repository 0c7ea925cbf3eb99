"""
Auto-Provisioner

Materializes the conversations a user should belong to (group memberships,
eager direct rooms) and records approval requests for direct chats that a
rule does not allow immediately.

Every operation here is safe to retry: rooms are found-or-created through
their unique room_key, memberships are added only when absent, and a pending
request for the same pair is reused.
"""
import logging
from typing import List, Optional
from uuid import UUID

from ..errors import BackingStoreError
from ..models.chat_request import ChatRequest, RequestStatus
from ..models.chat_room import ChatCategory
from ..models.notification import NotificationKind, NotificationPayload
from ..models.user import User, UserRole
from ..storage.chat_request_storage import ChatRequestStorage
from ..storage.user_storage import UserStorage
from .notification_dispatcher import NotificationDispatcher, notify_best_effort
from .permission_engine import PermissionEngine
from .room_registry import RoomRegistry

logger = logging.getLogger("chatcore.services.provisioner")


class AutoProvisioner:
    """Service for automatic chat membership and approval requests"""

    def __init__(
        self,
        permission_engine: PermissionEngine,
        user_storage: UserStorage,
        room_registry: RoomRegistry,
        request_storage: ChatRequestStorage,
        dispatcher: NotificationDispatcher,
        approver_role: UserRole = UserRole.PROJECT_MANAGER,
    ):
        self.permissions = permission_engine
        self.user_storage = user_storage
        self.rooms = room_registry
        self.request_storage = request_storage
        self.dispatcher = dispatcher
        self.approver_role = approver_role

    async def setup_user_chats(self, user: User) -> None:
        """
        Ensure the user's baseline memberships.

        1. Joins every group the user qualifies for (created on first use)
        2. Creates direct rooms with every user of an auto-provisioned
           counterpart role

        Raises:
            BackingStoreError: on group membership failure; a retry is safe
        """
        for group in self.permissions.available_groups(user):
            await self.rooms.ensure_group_room(group, user.id)

        for role in self.permissions.eager_counterpart_roles(user.role):
            counterparts = await self.user_storage.list_by_role(role)
            for other in counterparts:
                if other.id == user.id:
                    continue
                room_id = await self.create_auto_direct_chat(user, other)
                if room_id is None:
                    logger.warning(f"Could not provision direct room {user.id} <-> {other.id}")

        logger.info(f"Chats set up for user {user.id} ({user.role.value})")

    async def create_auto_direct_chat(self, user_a: User, user_b: User) -> Optional[UUID]:
        """
        Find-or-create a direct room the rules allow without approval.

        Returns:
            Room id, or None when the pair needs approval, is not permitted,
            or the room could not be persisted
        """
        if user_a.id == user_b.id:
            return None

        permission = self.permissions.can_direct_chat(user_a, user_b)
        if not permission.is_immediate:
            logger.debug(
                f"Auto direct chat refused for {user_a.id} <-> {user_b.id}: {permission.code.value}"
            )
            return None

        try:
            room = await self.rooms.find_or_create_direct_room(
                user_a.id,
                user_b.id,
                name=f"{user_a.display_name} ↔ {user_b.display_name}",
                category=ChatCategory.AUTO_DIRECT,
                created_by=user_a.id,
            )
        except BackingStoreError as e:
            logger.error(f"Failed to create direct room {user_a.id} <-> {user_b.id}: {e}")
            return None
        return room.id

    async def request_chat_permission(
        self,
        requester: User,
        target: User,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Record a pending approval request and alert the approvers.

        Returns True only if the request is durably recorded (or an
        identical pending one already exists).
        """
        permission = self.permissions.can_direct_chat(requester, target)
        if not permission.allowed or not permission.requires_approval:
            logger.warning(
                f"Chat request {requester.id} -> {target.id} rejected: {permission.code.value}"
            )
            return False

        try:
            pending = await self.request_storage.find_latest(
                requester.id, target.id, RequestStatus.PENDING
            )
            if pending is not None:
                return True

            request = await self.request_storage.create(ChatRequest(
                requester_id=requester.id,
                target_user_id=target.id,
                reason=reason or "Direct chat request",
            ))
        except BackingStoreError as e:
            logger.error(f"Failed to record chat request {requester.id} -> {target.id}: {e}")
            return False

        logger.info(f"Chat request {request.id} created ({requester.id} -> {target.id})")
        await self._notify_approvers(request, requester, target)
        return True

    async def open_approved_chat(self, requester: User, target: User) -> Optional[UUID]:
        """
        Open the direct room for an approved request.

        Approval does not create the room by itself; it unlocks this call.
        Returns None when no approved request exists or on store failure.
        """
        try:
            approved = await self.request_storage.find_latest(
                requester.id, target.id, RequestStatus.APPROVED
            )
            if approved is None:
                return None

            room = await self.rooms.find_or_create_direct_room(
                requester.id,
                target.id,
                name=f"{requester.display_name} ↔ {target.display_name}",
                category=ChatCategory.APPROVED_DIRECT,
                created_by=requester.id,
                auto_created=False,
            )
        except BackingStoreError as e:
            logger.error(f"Failed to open approved chat {requester.id} -> {target.id}: {e}")
            return None
        return room.id

    async def list_chatable_users(self, user: User) -> List[User]:
        """Directory users the rules allow `user` to direct-chat with"""
        others = await self.user_storage.list_active(exclude_id=user.id)
        return [o for o in others if self.permissions.can_direct_chat(user, o).allowed]

    async def list_requests(self, user: User) -> List[ChatRequest]:
        """Requests made by the user, with their current status"""
        return await self.request_storage.list_by_requester(user.id)

    async def _notify_approvers(self, request: ChatRequest, requester: User, target: User) -> None:
        try:
            approvers = await self.user_storage.list_by_role(self.approver_role)
        except BackingStoreError as e:
            logger.warning(f"Could not load approvers for request {request.id}: {e}")
            return

        recipients = [a.id for a in approvers if a.id != requester.id]
        if not recipients:
            logger.warning(f"No {self.approver_role.value} users to approve request {request.id}")
            return

        await notify_best_effort(
            self.dispatcher,
            recipients,
            NotificationPayload(
                kind=NotificationKind.CHAT_REQUEST,
                title="New chat request",
                summary=(
                    f"{requester.display_name} requests a chat with {target.display_name}. "
                    f"Reason: {request.reason}"
                ),
                request_id=request.id,
            ),
        )
