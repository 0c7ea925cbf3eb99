"""
Room Registry

Session-scoped view of the rooms a user participates in, plus the
find-or-create and archive operations behind it.
"""
import logging
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from ..errors import ValidationError
from ..models.access import GroupDefinition
from ..models.chat_room import (
    ChatRoom, ChatCategory, RoomKind, direct_room_key, group_room_key, unique_ids,
)
from ..realtime.change_feed import ChangeEvent, ChangeFeed, Subscription
from ..storage.chat_room_storage import ChatRoomStorage

logger = logging.getLogger("chatcore.services.rooms")

# Group categories that exist once per deployment
PROVISIONED_GROUPS = (
    ChatCategory.ANNOUNCEMENT,
    ChatCategory.COORDINATION,
    ChatCategory.TRAINING_TEAM,
)


def is_provisioned_group(room: ChatRoom) -> bool:
    """Shared group created once per deployment (keyed group:<category>)"""
    return room.kind == RoomKind.GROUP and room.room_key == group_room_key(room.chat_category)


class RoomRegistry:
    """Rooms for one session user"""

    def __init__(self, room_storage: ChatRoomStorage, change_feed: ChangeFeed, user_id: UUID):
        self.room_storage = room_storage
        self.change_feed = change_feed
        self.user_id = user_id
        self._rooms: List[ChatRoom] = []

    @property
    def rooms(self) -> List[ChatRoom]:
        """Cached rooms of the session user (last listed or created)"""
        return list(self._rooms)

    async def find_direct_room(self, user_a: UUID, user_b: UUID) -> Optional[ChatRoom]:
        """Direct room with exactly these two participants"""
        if user_a == user_b:
            return None
        room = await self.room_storage.find_direct(user_a, user_b)
        if room and room.is_direct_between(user_a, user_b):
            return room
        return None

    async def create_room(
        self,
        name: str,
        kind: RoomKind,
        participant_ids: List[UUID],
        category: ChatCategory = ChatCategory.CUSTOM,
        created_by: Optional[UUID] = None,
        description: Optional[str] = None,
        is_read_only: bool = False,
        auto_created: bool = False,
    ) -> ChatRoom:
        """
        Create a room.

        Direct rooms and provisioned groups are keyed, so calling this again
        returns the existing room instead of a duplicate.

        Raises:
            ValidationError: Direct room without exactly two distinct
                participants, or a group with none
        """
        ids = unique_ids(participant_ids)
        if kind == RoomKind.DIRECT and len(ids) != 2:
            raise ValidationError(
                f"Direct room requires exactly two distinct participants, got {len(ids)}"
            )
        if kind == RoomKind.GROUP and not ids:
            raise ValidationError("Group room requires at least one participant")

        room = ChatRoom(
            name=name,
            kind=kind,
            chat_category=category,
            participant_ids=ids,
            description=description,
            is_read_only=is_read_only,
            auto_created=auto_created,
            created_by=created_by,
        )

        if kind == RoomKind.DIRECT:
            room.room_key = direct_room_key(ids[0], ids[1])
        elif category in PROVISIONED_GROUPS:
            room.room_key = group_room_key(category)

        if room.room_key:
            room, created = await self._create_keyed(room)
        else:
            room = await self.room_storage.create(room)
            created = True

        if created:
            logger.info(f"Created {room.kind.value} room {room.id} ({room.chat_category.value})")
        self._remember(room)
        return room

    async def find_or_create_direct_room(
        self,
        user_a: UUID,
        user_b: UUID,
        name: str,
        category: ChatCategory = ChatCategory.AUTO_DIRECT,
        created_by: Optional[UUID] = None,
        auto_created: bool = True,
    ) -> ChatRoom:
        """Existing direct room for the pair, else a new one"""
        existing = await self.find_direct_room(user_a, user_b)
        if existing and not existing.is_archived:
            self._remember(existing)
            return existing

        return await self.create_room(
            name=name,
            kind=RoomKind.DIRECT,
            participant_ids=[user_a, user_b],
            category=category,
            created_by=created_by or user_a,
            auto_created=auto_created,
        )

    async def ensure_group_room(self, group: GroupDefinition, member_id: UUID) -> ChatRoom:
        """Provisioned group room for a category, with member_id in it exactly once"""
        room = ChatRoom(
            name=group.name,
            kind=RoomKind.GROUP,
            chat_category=group.chat_category,
            participant_ids=[member_id],
            description=group.description or None,
            is_read_only=group.is_read_only,
            auto_created=True,
            created_by=member_id,
            room_key=group_room_key(group.chat_category),
        )
        room, created = await self.room_storage.create_or_get(room)
        if created:
            logger.info(f"Created group room {room.id} ({group.chat_category.value})")
        elif room.is_archived:
            restored = await self.room_storage.restore(room.id)
            if restored is not None:
                logger.info(f"Restored archived group room {room.id} ({group.chat_category.value})")
                room = restored
        if not room.has_participant(member_id):
            if await self.room_storage.add_participant(room.id, member_id):
                logger.info(f"Added user {member_id} to {group.chat_category.value}")
            room.participant_ids.append(member_id)

        self._remember(room)
        return room

    async def add_participant(self, room_id: UUID, user_id: UUID) -> bool:
        """Add a participant; False when already present"""
        added = await self.room_storage.add_participant(room_id, user_id)
        if added:
            logger.info(f"Added user {user_id} to room {room_id}")
        return added

    async def get_room(self, room_id: UUID) -> Optional[ChatRoom]:
        """Room by id, from cache when known"""
        for room in self._rooms:
            if room.id == room_id:
                return room
        return await self.room_storage.get_by_id(room_id)

    async def list_rooms_for_user(self, user_id: Optional[UUID] = None) -> List[ChatRoom]:
        """Active rooms of a user, most recent activity first"""
        target = user_id or self.user_id
        rooms = await self.room_storage.list_by_user(target)
        if target == self.user_id:
            self._rooms = list(rooms)
        return rooms

    async def archive_room(self, room_id: UUID) -> bool:
        """
        Soft delete; messages are kept.

        Raises:
            ValidationError: the room is a provisioned group, which every
                qualifying user shares
        """
        room = await self.get_room(room_id)
        if room is not None and is_provisioned_group(room):
            raise ValidationError(f"Room {room_id} is a provisioned group and cannot be archived")

        archived = await self.room_storage.archive(room_id)
        self._rooms = [r for r in self._rooms if r.id != room_id]
        if archived:
            logger.info(f"Archived room {room_id}")
        return archived

    def subscribe_to_rooms(
        self,
        on_change: Optional[Callable[[List[ChatRoom]], None]] = None,
    ) -> Subscription:
        """Reload the cached room list whenever one of the user's rooms changes"""

        async def handle(event: ChangeEvent) -> None:
            if not await self._involves_user(event):
                return
            rooms = await self.list_rooms_for_user()
            if on_change is not None:
                on_change(rooms)

        return self.change_feed.subscribe("chat_rooms", handle)

    async def _create_keyed(self, room: ChatRoom) -> Tuple[ChatRoom, bool]:
        stored, created = await self.room_storage.create_or_get(room)
        if not created and stored.is_archived:
            restored = await self.room_storage.restore(stored.id)
            if restored is not None:
                logger.info(f"Restored archived {stored.kind.value} room {stored.id}")
                stored = restored
        return stored, created

    async def _involves_user(self, event: ChangeEvent) -> bool:
        """Change payloads carry no participant list; decide from cache or the stored row"""
        room_id = _as_uuid(event.record.get("id"))
        if room_id is None:
            return False
        if any(r.id == room_id for r in self._rooms):
            return True
        room = await self.room_storage.get_by_id(room_id)
        return room is not None and room.has_participant(self.user_id)

    def _remember(self, room: ChatRoom) -> None:
        if not room.has_participant(self.user_id) or room.is_archived:
            return
        self._rooms = [room] + [r for r in self._rooms if r.id != room.id]


def _as_uuid(value) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None
