"""
Engine Service

Composite service that owns the storages, the change feed and the
stateless services, and builds per-user ChatSessions.

One instance per process is kept for the HTTP app; the core components
themselves receive their dependencies explicitly.
"""
import logging
from typing import Optional
from uuid import UUID

from ..config import Config
from ..models.user import User, UserRole
from ..realtime.change_feed import ChangeFeed
from ..realtime.pg_listener import PgChangeListener
from ..storage.user_storage import UserStorage
from ..storage.chat_room_storage import ChatRoomStorage
from ..storage.message_storage import MessageStorage
from ..storage.chat_request_storage import ChatRequestStorage
from ..storage.notification_storage import NotificationStorage
from .auto_provisioner import AutoProvisioner
from .message_sync import MessageSyncEngine
from .notification_dispatcher import NotificationDispatcher, StoreNotificationDispatcher
from .permission_engine import PermissionEngine
from .room_registry import RoomRegistry
from .session import ChatSession

logger = logging.getLogger("chatcore.services.engine")

# Process-wide instance used by the HTTP layer
_engine_service: Optional["EngineService"] = None


class EngineService:
    """
    Composite engine service.

    Manages:
    - All storage connections (PostgreSQL)
    - The change feed and its LISTEN bridge
    - Session construction
    - Graceful shutdown
    """

    def __init__(
        self,
        postgres_dsn: Optional[str] = None,
        permission_engine: Optional[PermissionEngine] = None,
        change_feed: Optional[ChangeFeed] = None,
        listen_for_changes: bool = Config.CHANGE_FEED_ENABLED,
    ):
        """Initialize engine service with all storages"""
        self.postgres_dsn = postgres_dsn or Config.get_postgres_dsn()

        # Initialize storages
        self.user_storage = UserStorage(self.postgres_dsn)
        self.room_storage = ChatRoomStorage(self.postgres_dsn)
        self.message_storage = MessageStorage(self.postgres_dsn)
        self.request_storage = ChatRequestStorage(self.postgres_dsn)
        self.notification_storage = NotificationStorage(self.postgres_dsn)

        # Realtime
        self.change_feed = change_feed or ChangeFeed()
        self.change_listener = (
            PgChangeListener(self.change_feed, self.postgres_dsn, Config.CHANGE_FEED_CHANNEL)
            if listen_for_changes else None
        )

        # Stateless services
        self.permission_engine = permission_engine or PermissionEngine()
        self.dispatcher: NotificationDispatcher = StoreNotificationDispatcher(self.notification_storage)
        self.approver_role = UserRole(Config.APPROVER_ROLE)

        self._initialized = False
        logger.info("EngineService created")

    async def initialize(self):
        """Initialize all storages and start listening for changes"""
        if self._initialized:
            logger.info("EngineService already initialized")
            return

        logger.info("Initializing EngineService...")

        await self.user_storage.init()
        await self.room_storage.init()
        await self.message_storage.init()
        await self.request_storage.init()
        await self.notification_storage.init()

        if self.change_listener is not None:
            await self.change_listener.start()

        self._initialized = True
        logger.info("EngineService initialized successfully")

    async def close(self):
        """Close all connections"""
        logger.info("Closing EngineService...")

        if self.change_listener is not None:
            await self.change_listener.stop()
        self.change_feed.close()

        await self.user_storage.close()
        await self.room_storage.close()
        await self.message_storage.close()
        await self.request_storage.close()
        await self.notification_storage.close()

        self._initialized = False
        logger.info("EngineService closed")

    @property
    def is_initialized(self) -> bool:
        """Check if service is initialized"""
        return self._initialized

    async def get_user(self, user_id: UUID) -> Optional[User]:
        """Directory lookup"""
        return await self.user_storage.get_by_id(user_id)

    def open_session(self, user: User) -> ChatSession:
        """Build the stateful chat components for one user"""
        rooms = RoomRegistry(self.room_storage, self.change_feed, user.id)
        messages = MessageSyncEngine(
            current_user=user,
            message_storage=self.message_storage,
            room_storage=self.room_storage,
            change_feed=self.change_feed,
            dispatcher=self.dispatcher,
            page_limit=Config.MESSAGE_PAGE_LIMIT,
        )
        provisioner = AutoProvisioner(
            permission_engine=self.permission_engine,
            user_storage=self.user_storage,
            room_registry=rooms,
            request_storage=self.request_storage,
            dispatcher=self.dispatcher,
            approver_role=self.approver_role,
        )
        return ChatSession(user, self.permission_engine, rooms, messages, provisioner)


def get_engine_service() -> EngineService:
    """Get or create engine service"""
    global _engine_service
    if _engine_service is None:
        _engine_service = EngineService()
    return _engine_service


async def init_engine_service() -> EngineService:
    """Initialize and return engine service"""
    service = get_engine_service()
    await service.initialize()
    return service
