"""
Chat Message Model

Represents a message in a chat room.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID, uuid4


class MessageType(str, Enum):
    """Message payload kinds"""
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    VOICE = "voice"


@dataclass(frozen=True)
class SenderInfo:
    """Denormalized sender identity joined from users"""
    id: UUID
    full_name: str = ""
    avatar_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
        }


@dataclass(frozen=True)
class ChatMessage:
    """
    Message entity.

    id is assigned by the backing store. A message is never mutated after
    creation except for is_read, so the local copy is replaced wholesale
    via mark_read().

    Within a room messages are totally ordered by (created_at, id).
    """
    id: UUID = field(default_factory=uuid4)
    room_id: UUID = field(default_factory=uuid4)
    sender_id: UUID = field(default_factory=uuid4)
    content: str = ""
    message_type: MessageType = MessageType.TEXT
    file_url: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    is_read: bool = False
    sender: Optional[SenderInfo] = None

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        return (self.created_at, str(self.id))

    def mark_read(self) -> "ChatMessage":
        return self if self.is_read else replace(self, is_read=True)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "room_id": str(self.room_id),
            "sender_id": str(self.sender_id),
            "content": self.content,
            "message_type": self.message_type.value,
            "file_url": self.file_url,
            "created_at": self.created_at.isoformat(),
            "is_read": self.is_read,
            "sender": self.sender.to_dict() if self.sender else None,
        }
