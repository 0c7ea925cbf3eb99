"""
Notification Models

NotificationPayload: what the core hands to the dispatcher.
ChatNotification: a persisted in-app notification row.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4


class NotificationKind(str, Enum):
    """Why a user is being alerted"""
    MESSAGE = "message"
    CHAT_REQUEST = "chat_request"
    SYSTEM_EVENT = "system_event"


@dataclass(frozen=True)
class NotificationPayload:
    """Dispatcher input"""
    kind: NotificationKind
    summary: str
    title: str = ""
    room_id: Optional[UUID] = None
    request_id: Optional[UUID] = None


@dataclass
class ChatNotification:
    """
    Row in chat_notifications. Written by the core, read by the client.
    """
    id: UUID = field(default_factory=uuid4)
    user_id: UUID = field(default_factory=uuid4)
    notification_type: NotificationKind = NotificationKind.MESSAGE
    title: str = ""
    content: str = ""
    chat_room_id: Optional[UUID] = None
    request_id: Optional[UUID] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def for_recipient(cls, user_id: UUID, payload: NotificationPayload) -> "ChatNotification":
        return cls(
            user_id=user_id,
            notification_type=payload.kind,
            title=payload.title,
            content=payload.summary,
            chat_room_id=payload.room_id,
            request_id=payload.request_id,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "notification_type": self.notification_type.value,
            "title": self.title,
            "content": self.content,
            "chat_room_id": str(self.chat_room_id) if self.chat_room_id else None,
            "request_id": str(self.request_id) if self.request_id else None,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }
