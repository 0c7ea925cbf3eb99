"""
Chat Session

The stateful components of one signed-in user, built together and passed
around explicitly instead of living in module globals.
"""
import logging

from ..models.user import User
from .auto_provisioner import AutoProvisioner
from .message_sync import MessageSyncEngine
from .permission_engine import PermissionEngine
from .room_registry import RoomRegistry

logger = logging.getLogger("chatcore.services.session")


class ChatSession:
    """Room registry, message sync and provisioning for one user"""

    def __init__(
        self,
        user: User,
        permissions: PermissionEngine,
        rooms: RoomRegistry,
        messages: MessageSyncEngine,
        provisioner: AutoProvisioner,
    ):
        self.user = user
        self.permissions = permissions
        self.rooms = rooms
        self.messages = messages
        self.provisioner = provisioner

    async def archive_room(self, room_id) -> bool:
        """Archive a room and forget its local state"""
        archived = await self.rooms.archive_room(room_id)
        self.messages.unsubscribe(room_id)
        self.messages.clear_messages(room_id)
        return archived

    def close(self) -> None:
        """Release feed subscriptions"""
        self.messages.close()
        logger.debug(f"Session closed for user {self.user.id}")
