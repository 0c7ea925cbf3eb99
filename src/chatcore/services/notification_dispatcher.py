"""
Notification Dispatcher

Boundary between the chat core and notification delivery. The core only
says who should be alerted about what; delivery (push, badges, sounds)
belongs to whatever consumes chat_notifications.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List
from uuid import UUID

from ..models.notification import ChatNotification, NotificationPayload
from ..storage.notification_storage import NotificationStorage

logger = logging.getLogger("chatcore.services.notification")


class NotificationDispatcher(ABC):
    """Abstract dispatcher"""

    @abstractmethod
    async def notify(self, recipient_ids: Iterable[UUID], payload: NotificationPayload) -> int:
        """
        Alert recipients.

        Returns the number of recipients alerted. May raise; callers treat
        notification as best-effort and never roll back on failure.
        """
        ...


class StoreNotificationDispatcher(NotificationDispatcher):
    """Writes one chat_notifications row per recipient"""

    def __init__(self, notification_storage: NotificationStorage):
        self.notification_storage = notification_storage

    async def notify(self, recipient_ids: Iterable[UUID], payload: NotificationPayload) -> int:
        recipients: List[UUID] = []
        for uid in recipient_ids:
            if uid not in recipients:
                recipients.append(uid)
        if not recipients:
            return 0

        rows = [ChatNotification.for_recipient(uid, payload) for uid in recipients]
        written = await self.notification_storage.create_many(rows)
        logger.info(f"Queued {written} {payload.kind.value} notification(s)")
        return written


async def notify_best_effort(
    dispatcher: NotificationDispatcher,
    recipient_ids: Iterable[UUID],
    payload: NotificationPayload,
) -> bool:
    """Call the dispatcher, logging instead of raising on failure"""
    try:
        await dispatcher.notify(recipient_ids, payload)
        return True
    except Exception as e:
        logger.warning(f"Notification dispatch failed ({payload.kind.value}): {e}")
        return False
