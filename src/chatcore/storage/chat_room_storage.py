"""
Chat Room Storage

PostgreSQL storage for chat rooms.

A room and its participant list live in one row, so a room can never exist
without its participants. The unique room_key column turns find-or-create
into an idempotent insert-or-select.
"""
import logging
from datetime import datetime
from typing import Optional, List, Tuple
from uuid import UUID

from .base import BaseStorage
from ..errors import BackingStoreError
from ..models.chat_room import (
    ChatRoom, ChatCategory, RoomKind, direct_room_key, group_room_key,
)

logger = logging.getLogger("chatcore.storage.chat_room")


class ChatRoomStorage(BaseStorage):
    """Storage for ChatRoom entities"""

    async def create(self, room: ChatRoom) -> ChatRoom:
        """Insert a room without an idempotency key"""
        query = """
            INSERT INTO chat_rooms (
                id, name, description, type, chat_category, participants,
                is_read_only, auto_created, created_by, room_key,
                created_at, updated_at, archived_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING *
        """
        row = await self.fetchrow(query, *self._room_args(room))
        return self._row_to_room(row)

    async def create_or_get(self, room: ChatRoom) -> Tuple[ChatRoom, bool]:
        """
        Insert a keyed room, or return the existing row with the same key.

        Returns (room, created). A conflicting key leaves the existing row
        untouched, so repeated setup calls write nothing and fire no
        change notifications.
        """
        if not room.room_key:
            raise ValueError("create_or_get requires a room_key")

        query = """
            INSERT INTO chat_rooms (
                id, name, description, type, chat_category, participants,
                is_read_only, auto_created, created_by, room_key,
                created_at, updated_at, archived_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            ON CONFLICT (room_key) DO NOTHING
            RETURNING *
        """
        row = await self.fetchrow(query, *self._room_args(room))
        if row is not None:
            return self._row_to_room(row), True

        existing = await self.get_by_key(room.room_key)
        if existing is None:
            raise BackingStoreError(
                f"Room with key {room.room_key} conflicted but was not found",
                operation="create_or_get",
            )
        return existing, False

    async def get_by_id(self, room_id: UUID) -> Optional[ChatRoom]:
        """Get room by ID"""
        row = await self.fetchrow("SELECT * FROM chat_rooms WHERE id = $1", room_id)
        return self._row_to_room(row) if row else None

    async def get_by_key(self, room_key: str) -> Optional[ChatRoom]:
        """Get room by idempotency key"""
        row = await self.fetchrow("SELECT * FROM chat_rooms WHERE room_key = $1", room_key)
        return self._row_to_room(row) if row else None

    async def find_direct(self, user1_id: UUID, user2_id: UUID) -> Optional[ChatRoom]:
        """Get direct room between two users"""
        return await self.get_by_key(direct_room_key(user1_id, user2_id))

    async def get_group(self, category: ChatCategory) -> Optional[ChatRoom]:
        """Get the provisioned group room for a category"""
        return await self.get_by_key(group_room_key(category))

    async def list_by_user(self, user_id: UUID, include_archived: bool = False) -> List[ChatRoom]:
        """List rooms a user participates in, most recent activity first"""
        query = """
            SELECT * FROM chat_rooms
            WHERE $1 = ANY(participants)
              AND ($2 = true OR archived_at IS NULL)
            ORDER BY updated_at DESC, created_at DESC
        """
        rows = await self.fetch(query, user_id, include_archived)
        return [self._row_to_room(row) for row in rows]

    async def add_participant(self, room_id: UUID, user_id: UUID) -> bool:
        """Add participant to room; False if already present or room missing"""
        query = """
            UPDATE chat_rooms
            SET participants = array_append(participants, $2), updated_at = $3
            WHERE id = $1 AND NOT $2 = ANY(participants)
        """
        result = await self.execute(query, room_id, user_id, datetime.utcnow())
        return result == "UPDATE 1"

    async def touch(self, room_id: UUID) -> None:
        """Bump updated_at (last activity)"""
        query = "UPDATE chat_rooms SET updated_at = $2 WHERE id = $1"
        await self.execute(query, room_id, datetime.utcnow())

    async def archive(self, room_id: UUID) -> bool:
        """Soft delete room (messages are kept)"""
        query = """
            UPDATE chat_rooms SET archived_at = $2, updated_at = $2
            WHERE id = $1 AND archived_at IS NULL
        """
        result = await self.execute(query, room_id, datetime.utcnow())
        return result == "UPDATE 1"

    async def restore(self, room_id: UUID) -> Optional[ChatRoom]:
        """Clear archived_at"""
        query = """
            UPDATE chat_rooms SET archived_at = NULL, updated_at = $2
            WHERE id = $1
            RETURNING *
        """
        row = await self.fetchrow(query, room_id, datetime.utcnow())
        return self._row_to_room(row) if row else None

    def _room_args(self, room: ChatRoom) -> tuple:
        return (
            room.id, room.name, room.description, room.kind.value,
            room.chat_category.value, list(room.participant_ids),
            room.is_read_only, room.auto_created, room.created_by, room.room_key,
            room.created_at, room.updated_at, room.archived_at,
        )

    def _row_to_room(self, row) -> ChatRoom:
        """Convert database row to ChatRoom"""
        participants = row["participants"] or []
        if participants and isinstance(participants[0], str):
            participants = [UUID(p) for p in participants]

        return ChatRoom(
            id=row["id"],
            name=row["name"],
            kind=RoomKind(row["type"]),
            chat_category=ChatCategory(row["chat_category"]),
            participant_ids=list(participants),
            description=row["description"],
            is_read_only=row["is_read_only"],
            auto_created=row["auto_created"],
            created_by=row["created_by"],
            room_key=row["room_key"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            archived_at=row["archived_at"],
        )
