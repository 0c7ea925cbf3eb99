"""
PostgreSQL Change Listener

Holds one LISTEN connection and republishes NOTIFY payloads into a
ChangeFeed. The trigger that emits them lives in the migrations.

If the server drops the connection, the listener reconnects with
backoff. Notifications sent while disconnected are lost; clients
recover them with a full reload.
"""
import asyncio
import json
import logging
from typing import Optional, Set

import asyncpg

from .change_feed import ChangeEvent, ChangeFeed
from ..errors import BackingStoreError
from ..storage.base import STORE_ERRORS

logger = logging.getLogger("chatcore.realtime.pg_listener")


class PgChangeListener:
    """Bridges pg_notify to the in-process ChangeFeed"""

    max_retries = 5
    retry_delay = 1.0
    max_retry_delay = 30.0

    def __init__(self, feed: ChangeFeed, postgres_dsn: str, channel: str = "chat_changes"):
        self.feed = feed
        self.pg_dsn = postgres_dsn
        self.channel = channel
        self._conn: Optional[asyncpg.Connection] = None
        self._tasks: Set[asyncio.Task] = set()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def is_running(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def start(self):
        """Open the LISTEN connection"""
        if self.is_running:
            return
        self._stopping = False
        try:
            await self._connect()
        except STORE_ERRORS as e:
            logger.error(f"Failed to LISTEN on {self.channel}: {e}")
            raise BackingStoreError(str(e), operation="listen") from e
        logger.info(f"Listening for changes on channel '{self.channel}'")

    async def stop(self):
        """Close the LISTEN connection and wait for in-flight deliveries"""
        self._stopping = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            await asyncio.gather(self._reconnect_task, return_exceptions=True)
            self._reconnect_task = None
        if self._conn is not None:
            if not self._conn.is_closed():
                self._conn.remove_termination_listener(self._on_termination)
                await self._conn.remove_listener(self.channel, self._on_notification)
                await self._conn.close()
            self._conn = None
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Change listener stopped")

    async def _connect(self):
        conn = await asyncpg.connect(self.pg_dsn)
        await conn.add_listener(self.channel, self._on_notification)
        conn.add_termination_listener(self._on_termination)
        self._conn = conn

    def _on_termination(self, connection) -> None:
        """asyncpg termination callback; the server or network closed the socket"""
        if self._stopping or connection is not self._conn:
            return
        logger.warning(f"LISTEN connection on '{self.channel}' was closed, reconnecting")
        self._conn = None
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self):
        delay = self.retry_delay
        for attempt in range(1, self.max_retries + 1):
            try:
                await self._connect()
                logger.info(f"Listening again on '{self.channel}' (attempt {attempt}/{self.max_retries})")
                return
            except STORE_ERRORS as e:
                logger.warning(f"Reconnect to '{self.channel}' failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt < self.max_retries:
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, self.max_retry_delay)
        logger.error(f"Gave up listening on '{self.channel}' after {self.max_retries} attempts")

    def _on_notification(self, connection, pid: int, channel: str, payload: str) -> None:
        """asyncpg listener callback (sync); schedules async delivery"""
        try:
            change = ChangeEvent.from_payload(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring malformed change payload on {channel}: {e}")
            return

        task = asyncio.get_running_loop().create_task(self.feed.publish(change))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
