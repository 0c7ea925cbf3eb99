"""
Notification Storage

Write-side storage for in-app chat notifications.
"""
import logging
from typing import List
from uuid import UUID

from .base import BaseStorage
from ..models.notification import ChatNotification, NotificationKind

logger = logging.getLogger("chatcore.storage.notification")


class NotificationStorage(BaseStorage):
    """Storage for ChatNotification entities"""

    async def create_many(self, notifications: List[ChatNotification]) -> int:
        """Insert notifications in one round trip; returns the count written"""
        if not notifications:
            return 0
        query = """
            INSERT INTO chat_notifications (
                id, user_id, notification_type, title, content,
                chat_room_id, request_id, is_read, created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        """
        await self.executemany(query, [
            (
                n.id, n.user_id, n.notification_type.value, n.title, n.content,
                n.chat_room_id, n.request_id, n.is_read, n.created_at,
            )
            for n in notifications
        ])
        return len(notifications)

    async def list_by_user(self, user_id: UUID, limit: int = 50) -> List[ChatNotification]:
        """List a user's notifications, newest first"""
        query = """
            SELECT * FROM chat_notifications
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
        """
        rows = await self.fetch(query, user_id, limit)
        return [self._row_to_notification(row) for row in rows]

    def _row_to_notification(self, row) -> ChatNotification:
        """Convert database row to ChatNotification"""
        return ChatNotification(
            id=row["id"],
            user_id=row["user_id"],
            notification_type=NotificationKind(row["notification_type"]),
            title=row["title"],
            content=row["content"],
            chat_room_id=row["chat_room_id"],
            request_id=row["request_id"],
            is_read=row["is_read"],
            created_at=row["created_at"],
        )
