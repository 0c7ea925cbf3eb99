"""
Chat Core Data Models

Domain models for role-based chat access and message sync.
"""
from .user import User, UserRole, parse_specializations
from .chat_room import ChatRoom, RoomKind, ChatCategory, direct_room_key, group_room_key
from .message import ChatMessage, MessageType, SenderInfo
from .chat_request import ChatRequest, RequestStatus
from .notification import ChatNotification, NotificationKind, NotificationPayload
from .access import (
    ChatAccessRule,
    GroupDefinition,
    ChatPermission,
    PermissionCode,
    DEFAULT_ACCESS_RULES,
    DEFAULT_GROUPS,
)

__all__ = [
    'User',
    'UserRole',
    'parse_specializations',
    'ChatRoom',
    'RoomKind',
    'ChatCategory',
    'direct_room_key',
    'group_room_key',
    'ChatMessage',
    'MessageType',
    'SenderInfo',
    'ChatRequest',
    'RequestStatus',
    'ChatNotification',
    'NotificationKind',
    'NotificationPayload',
    'ChatAccessRule',
    'GroupDefinition',
    'ChatPermission',
    'PermissionCode',
    'DEFAULT_ACCESS_RULES',
    'DEFAULT_GROUPS',
]
