"""
Chat Core Storage Layer

PostgreSQL storage implementations for chat entities.
"""
from .base import BaseStorage
from .user_storage import UserStorage
from .chat_room_storage import ChatRoomStorage
from .message_storage import MessageStorage
from .chat_request_storage import ChatRequestStorage
from .notification_storage import NotificationStorage

__all__ = [
    'BaseStorage',
    'UserStorage',
    'ChatRoomStorage',
    'MessageStorage',
    'ChatRequestStorage',
    'NotificationStorage',
]
