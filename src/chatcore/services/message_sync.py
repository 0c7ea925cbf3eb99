"""
Message Sync Engine

Keeps an ordered, de-duplicated message log per room for one session user.

The change feed is the only writer of the local log: send_message() persists
and returns, and the message appears locally when its INSERT event arrives.
Because every insertion is keyed by the server id, a feed event delivered
twice, or racing a full reload, never produces a second copy.
"""
import bisect
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set
from uuid import UUID

from ..errors import ValidationError
from ..models.chat_room import ChatRoom, RoomKind
from ..models.message import ChatMessage, MessageType
from ..models.notification import NotificationKind, NotificationPayload
from ..models.user import User
from ..realtime.change_feed import ChangeEvent, ChangeFeed, ChangeType, Subscription
from ..storage.chat_room_storage import ChatRoomStorage
from ..storage.message_storage import MessageStorage
from .notification_dispatcher import NotificationDispatcher, notify_best_effort

logger = logging.getLogger("chatcore.services.message_sync")

MessageListener = Callable[[ChatMessage], None]

SUMMARY_LENGTH = 80


class RoomLog:
    """Messages of one room, unique by id, ordered by (created_at, id)"""

    def __init__(self, messages: Iterable[ChatMessage] = ()):
        self._by_id: Dict[UUID, ChatMessage] = {}
        self._keys: list = []
        self._ordered: List[ChatMessage] = []
        for message in messages:
            self.insert(message)

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, message_id: UUID) -> bool:
        return message_id in self._by_id

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._ordered)

    def insert(self, message: ChatMessage) -> bool:
        """Insert in order; False (no-op) if the id is already present"""
        if message.id in self._by_id:
            return False
        key = message.sort_key
        index = bisect.bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._ordered.insert(index, message)
        self._by_id[message.id] = message
        return True

    def mark_read_except(self, user_id: UUID) -> int:
        """Mark messages from other senders as read; returns how many changed"""
        changed = 0
        for index, message in enumerate(self._ordered):
            if message.sender_id != user_id and not message.is_read:
                updated = message.mark_read()
                self._ordered[index] = updated
                self._by_id[message.id] = updated
                changed += 1
        return changed

    def unread_count(self, user_id: UUID) -> int:
        return sum(1 for m in self._ordered if m.sender_id != user_id and not m.is_read)


class MessageSyncEngine:
    """Per-session message state for the current user"""

    def __init__(
        self,
        current_user: User,
        message_storage: MessageStorage,
        room_storage: ChatRoomStorage,
        change_feed: ChangeFeed,
        dispatcher: Optional[NotificationDispatcher] = None,
        page_limit: int = 500,
    ):
        self.current_user = current_user
        self.message_storage = message_storage
        self.room_storage = room_storage
        self.change_feed = change_feed
        self.dispatcher = dispatcher
        self.page_limit = page_limit

        self._logs: Dict[UUID, RoomLog] = {}
        self._subscriptions: Dict[UUID, Subscription] = {}
        self._listeners: Dict[UUID, List[MessageListener]] = {}
        # Feed arrivals seen while a full reload of the room is in flight
        self._reloading: Dict[UUID, List[ChatMessage]] = {}

    # ============================================
    # Local state
    # ============================================

    def messages(self, room_id: UUID) -> List[ChatMessage]:
        """Current local log of a room"""
        log = self._logs.get(room_id)
        return log.messages if log else []

    def get_unread_count(self, room_id: UUID) -> int:
        log = self._logs.get(room_id)
        return log.unread_count(self.current_user.id) if log else 0

    def get_total_unread_count(self) -> int:
        return sum(log.unread_count(self.current_user.id) for log in self._logs.values())

    def clear_messages(self, room_id: UUID) -> None:
        """Drop the local log of a room (subscription is kept)"""
        self._logs.pop(room_id, None)

    # ============================================
    # Backing store operations
    # ============================================

    async def send_message(
        self,
        room_id: UUID,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        file_url: Optional[str] = None,
    ) -> ChatMessage:
        """
        Persist a message from the current user.

        The message is not added to the local log here; the INSERT event
        from the change feed does that.

        Raises:
            ValidationError: room missing, archived, or sender not a participant
        """
        room = await self.room_storage.get_by_id(room_id)
        if room is None or room.is_archived:
            raise ValidationError(f"Room {room_id} does not exist or is archived")
        if not room.has_participant(self.current_user.id):
            raise ValidationError(f"User {self.current_user.id} is not a participant of room {room_id}")
        if message_type == MessageType.TEXT and not content.strip():
            raise ValidationError("Message content is empty")

        message = await self.message_storage.create(
            room_id, self.current_user.id, content, message_type, file_url
        )
        logger.info(f"Message {message.id} sent to room {room_id}")

        await self._notify_recipients(room, message)
        return message

    async def fetch_messages(self, room_id: UUID) -> List[ChatMessage]:
        """
        Full reload of a room from the backing store.

        The result replaces the local log after de-duplication by id.
        Feed events that land while the query is running are merged back in.
        """
        self._reloading[room_id] = []
        try:
            fetched = await self.message_storage.list_by_room(room_id, self.page_limit)
        finally:
            arrived = self._reloading.pop(room_id, [])

        log = RoomLog(fetched)
        for message in arrived:
            log.insert(message)
        if len(log) < len(fetched) + len(arrived):
            logger.debug(f"Dropped duplicate rows while reloading room {room_id}")
        self._logs[room_id] = log
        return log.messages

    async def mark_as_read(self, room_id: UUID) -> int:
        """Mark other senders' messages read, remotely then locally"""
        updated = await self.message_storage.mark_room_read(room_id, self.current_user.id)
        log = self._logs.get(room_id)
        if log is not None:
            log.mark_read_except(self.current_user.id)
        return updated

    # ============================================
    # Change feed
    # ============================================

    def subscribe_to_messages(
        self,
        room_id: UUID,
        on_message: Optional[MessageListener] = None,
    ) -> Subscription:
        """
        Follow INSERTs for a room.

        Subscribing again for the same room returns the existing handle
        (and registers the extra listener), so events are delivered once.
        """
        if on_message is not None:
            self._listeners.setdefault(room_id, []).append(on_message)

        existing = self._subscriptions.get(room_id)
        if existing is not None and existing.active:
            return existing

        async def handle(event: ChangeEvent) -> None:
            await self.handle_change(room_id, event)

        sub = self.change_feed.subscribe(
            "chat_messages",
            handle,
            event=ChangeType.INSERT,
            filters={"chat_room_id": room_id},
        )
        self._subscriptions[room_id] = sub
        return sub

    def unsubscribe(self, room_id: UUID) -> None:
        """Stop following a room. Safe after archive or if never subscribed"""
        sub = self._subscriptions.pop(room_id, None)
        if sub is not None:
            sub.unsubscribe()
        self._listeners.pop(room_id, None)

    async def handle_change(self, room_id: UUID, event: ChangeEvent) -> Optional[ChatMessage]:
        """
        Merge one INSERT event into the room log.

        Returns the inserted message, or None if it was skipped.
        """
        raw_id = event.record.get("id")
        try:
            message_id = UUID(str(raw_id))
        except (TypeError, ValueError):
            logger.warning(f"Change event without a valid message id: {event.record}")
            return None

        if message_id in self._logs.get(room_id, ()):
            logger.debug(f"Skipping duplicate message {message_id} in room {room_id}")
            return None

        message = await self.message_storage.get_with_sender(message_id)
        if message is None:
            logger.warning(f"Message {message_id} from change feed not found")
            return None

        # No await between this check and the insert
        log = self._logs.setdefault(room_id, RoomLog())
        if not log.insert(message):
            logger.debug(f"Skipping duplicate message {message_id} in room {room_id}")
            return None
        if room_id in self._reloading:
            self._reloading[room_id].append(message)

        for listener in list(self._listeners.get(room_id, [])):
            try:
                listener(message)
            except Exception:
                logger.exception(f"Message listener failed for room {room_id}")
        return message

    def close(self) -> None:
        """Unsubscribe from every room"""
        for room_id in list(self._subscriptions):
            self.unsubscribe(room_id)

    @property
    def subscribed_rooms(self) -> Set[UUID]:
        return set(self._subscriptions)

    async def _notify_recipients(self, room: ChatRoom, message: ChatMessage) -> None:
        if self.dispatcher is None:
            return
        recipients = [p for p in room.participant_ids if p != self.current_user.id]
        if not recipients:
            return

        sender_name = self.current_user.display_name or "New message"
        title = sender_name if room.kind == RoomKind.DIRECT else f"{room.name}: {sender_name}"
        if message.message_type == MessageType.TEXT:
            summary = message.content[:SUMMARY_LENGTH]
        else:
            summary = f"[{message.message_type.value}]"

        await notify_best_effort(
            self.dispatcher,
            recipients,
            NotificationPayload(
                kind=NotificationKind.MESSAGE,
                summary=summary,
                title=title,
                room_id=room.id,
            ),
        )
