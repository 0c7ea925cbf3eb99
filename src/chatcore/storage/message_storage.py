"""
Message Storage

PostgreSQL storage for chat messages.
"""
import logging
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from .base import BaseStorage
from ..models.message import ChatMessage, MessageType, SenderInfo

logger = logging.getLogger("chatcore.storage.message")

# Message columns joined with the sender's public profile
MESSAGE_WITH_SENDER = """
    SELECT m.*, u.full_name AS sender_full_name, u.avatar_url AS sender_avatar_url
    FROM chat_messages m
    LEFT JOIN users u ON u.id = m.sender_id
"""


class MessageStorage(BaseStorage):
    """Storage for ChatMessage entities"""

    async def create(
        self,
        room_id: UUID,
        sender_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        file_url: Optional[str] = None,
    ) -> ChatMessage:
        """
        Insert a message and bump the room's activity timestamp.

        The id and created_at are assigned by the database.
        """
        insert = """
            INSERT INTO chat_messages (chat_room_id, sender_id, content, message_type, file_url)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING *
        """
        async with self.transaction() as conn:
            row = await conn.fetchrow(insert, room_id, sender_id, content, message_type.value, file_url)
            await conn.execute(
                "UPDATE chat_rooms SET updated_at = $2 WHERE id = $1",
                room_id, datetime.utcnow(),
            )
        return self._row_to_message(row)

    async def get_with_sender(self, message_id: UUID) -> Optional[ChatMessage]:
        """Get message by ID including sender identity"""
        row = await self.fetchrow(f"{MESSAGE_WITH_SENDER} WHERE m.id = $1", message_id)
        return self._row_to_message(row) if row else None

    async def list_by_room(self, room_id: UUID, limit: int = 500) -> List[ChatMessage]:
        """List the latest messages in a room, oldest first"""
        query = f"""
            {MESSAGE_WITH_SENDER}
            WHERE m.chat_room_id = $1
            ORDER BY m.created_at DESC, m.id DESC
            LIMIT $2
        """
        rows = await self.fetch(query, room_id, limit)
        return [self._row_to_message(row) for row in reversed(rows)]

    async def mark_room_read(self, room_id: UUID, reader_id: UUID) -> int:
        """Mark every unread message not sent by reader as read"""
        query = """
            UPDATE chat_messages SET is_read = true
            WHERE chat_room_id = $1 AND sender_id <> $2 AND is_read = false
        """
        result = await self.execute(query, room_id, reader_id)
        return int(result.split()[-1]) if result else 0

    def _row_to_message(self, row) -> ChatMessage:
        """Convert database row to ChatMessage"""
        sender = None
        keys = row.keys()
        if "sender_full_name" in keys and row["sender_full_name"] is not None:
            sender = SenderInfo(
                id=row["sender_id"],
                full_name=row["sender_full_name"],
                avatar_url=row["sender_avatar_url"],
            )

        return ChatMessage(
            id=row["id"],
            room_id=row["chat_room_id"],
            sender_id=row["sender_id"],
            content=row["content"],
            message_type=MessageType(row["message_type"]),
            file_url=row["file_url"],
            created_at=row["created_at"],
            is_read=row["is_read"],
            sender=sender,
        )
