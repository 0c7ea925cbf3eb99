"""
Change Feed

In-process fan-out of row-level change events.

Events come from the database (see pg_listener) or are published directly,
which is how tests simulate delivery. Every subscription is an explicit
handle; unsubscribe() is idempotent.
"""
import inspect
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger("chatcore.realtime.feed")


class ChangeType(str, Enum):
    """Row operation that produced the event"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """
    A single row change.

    record is the new row (old row for DELETE); values are JSON scalars.
    """
    table: str
    type: ChangeType
    record: Dict[str, Any] = field(default_factory=dict)
    old_record: Optional[Dict[str, Any]] = None

    def matches(self, filters: Dict[str, str]) -> bool:
        """Equality match of every filter column against the record"""
        for column, expected in filters.items():
            if str(self.record.get(column)) != expected:
                return False
        return True

    @classmethod
    def from_payload(cls, data: dict) -> "ChangeEvent":
        """Create from a NOTIFY payload"""
        change_type = ChangeType(data["type"])
        record = data.get("record") or {}
        if change_type == ChangeType.DELETE and not record:
            record = data.get("old_record") or {}
        return cls(
            table=data["table"],
            type=change_type,
            record=record,
            old_record=data.get("old_record"),
        )


EventHandler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle for one feed subscription"""

    def __init__(
        self,
        feed: "ChangeFeed",
        sub_id: int,
        table: str,
        handler: EventHandler,
        event: Optional[ChangeType],
        filters: Dict[str, str],
    ):
        self._feed = feed
        self.id = sub_id
        self.table = table
        self.handler = handler
        self.event = event
        self.filters = filters
        self.active = True

    def wants(self, change: ChangeEvent) -> bool:
        if not self.active or change.table != self.table:
            return False
        if self.event is not None and change.type != self.event:
            return False
        return change.matches(self.filters)

    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once"""
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)

    def __repr__(self) -> str:
        return f"<Subscription {self.id} {self.table} {self.event} {self.filters}>"


class ChangeFeed:
    """Dispatches change events to matching subscriptions"""

    def __init__(self):
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        table: str,
        handler: EventHandler,
        event: Optional[ChangeType] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Subscription:
        """
        Register a handler for changes on a table.

        Args:
            table: Table name (e.g. "chat_messages")
            handler: Sync or async callable receiving the ChangeEvent
            event: Only this operation; None means any
            filters: Column equality predicate, e.g. {"chat_room_id": room_id}
        """
        normalized = {k: str(v) for k, v in (filters or {}).items()}
        sub = Subscription(self, next(self._ids), table, handler, event, normalized)
        self._subscriptions[sub.id] = sub
        logger.debug(f"Subscribed {sub}")
        return sub

    def _remove(self, sub: Subscription) -> None:
        self._subscriptions.pop(sub.id, None)
        logger.debug(f"Unsubscribed {sub}")

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, change: ChangeEvent) -> int:
        """
        Deliver an event to every matching subscription.

        Handler errors are logged and do not stop delivery to others.
        Returns the number of handlers invoked.
        """
        delivered = 0
        for sub in list(self._subscriptions.values()):
            if not sub.wants(change):
                continue
            delivered += 1
            try:
                result = sub.handler(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Change handler failed for {sub}")
        return delivered

    def close(self) -> None:
        """Drop every subscription"""
        for sub in list(self._subscriptions.values()):
            sub.unsubscribe()
