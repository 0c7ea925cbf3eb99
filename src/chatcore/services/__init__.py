"""
Chat Core Services

Permission rules, provisioning, rooms and message sync.
"""
from .permission_engine import PermissionEngine
from .notification_dispatcher import NotificationDispatcher, StoreNotificationDispatcher
from .room_registry import RoomRegistry, is_provisioned_group
from .message_sync import MessageSyncEngine, RoomLog
from .auto_provisioner import AutoProvisioner
from .session import ChatSession
from .engine_service import EngineService

__all__ = [
    'PermissionEngine',
    'NotificationDispatcher',
    'StoreNotificationDispatcher',
    'RoomRegistry',
    'is_provisioned_group',
    'MessageSyncEngine',
    'RoomLog',
    'AutoProvisioner',
    'ChatSession',
    'EngineService',
]
