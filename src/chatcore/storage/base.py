"""
Base Storage

Base class for PostgreSQL storage with connection pooling.
Driver failures surface as BackingStoreError.
"""
import asyncpg
import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional, Any, AsyncIterator

from ..errors import BackingStoreError

logger = logging.getLogger("chatcore.storage")

# Errors that mean "the backing store failed", as opposed to a bug in our SQL
STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class BaseStorage:
    """Base storage class with PostgreSQL connection pool"""

    def __init__(self, postgres_dsn: str = "postgresql://postgres@localhost/chatcore"):
        """
        Initialize base storage.

        Args:
            postgres_dsn: PostgreSQL connection DSN
        """
        self.pg_pool: Optional[asyncpg.Pool] = None
        self.pg_dsn = postgres_dsn
        self.process_id = os.getpid()
        self._initialized = False

    async def init(self):
        """Initialize storage - connect to PostgreSQL"""
        if self._initialized:
            return

        start_time = time.time()
        logger.info(f"Initializing {type(self).__name__}...")

        try:
            await self._init_postgres()
            self._initialized = True

            duration_ms = round((time.time() - start_time) * 1000, 2)
            logger.info(f"{type(self).__name__} initialized in {duration_ms}ms")
        except Exception as e:
            logger.error(f"Failed to initialize {type(self).__name__}: {e}")
            raise

    async def _init_postgres(self):
        """Initialize PostgreSQL connection pool with retries"""
        max_retries = 3
        retry_delay = 1

        current_pid = os.getpid()

        # Handle process fork - need new pool
        if self.pg_pool is not None and self.process_id != current_pid:
            logger.info(f"New process detected (old: {self.process_id}, new: {current_pid}), creating new pool")
            self.pg_pool = None

        self.process_id = current_pid

        for attempt in range(1, max_retries + 1):
            try:
                self.pg_pool = await asyncpg.create_pool(
                    self.pg_dsn,
                    min_size=1,
                    max_size=10,
                    command_timeout=60
                )

                async with self.pg_pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")

                logger.info(f"PostgreSQL connected (attempt {attempt}/{max_retries})")
                return

            except STORE_ERRORS as e:
                logger.error(f"PostgreSQL connection failed (attempt {attempt}/{max_retries}): {e}")
                if attempt < max_retries:
                    logger.info(f"Retrying in {retry_delay}s...")
                    await asyncio.sleep(retry_delay)

        raise BackingStoreError("Failed to connect to PostgreSQL after all retries", operation="connect")

    async def close(self):
        """Close database connections"""
        if self.pg_pool:
            await self.pg_pool.close()
            self.pg_pool = None
            self._initialized = False
            logger.info(f"{type(self).__name__} closed")

    def _pool(self) -> asyncpg.Pool:
        if self.pg_pool is None:
            raise BackingStoreError(f"{type(self).__name__} is not initialized", operation="acquire")
        return self.pg_pool

    async def execute(self, query: str, *args) -> str:
        """Execute a query and return status"""
        try:
            async with self._pool().acquire() as conn:
                return await conn.execute(query, *args)
        except STORE_ERRORS as e:
            raise BackingStoreError(str(e), operation="execute") from e

    async def executemany(self, query: str, args: list) -> None:
        """Execute a query for each argument tuple in one round trip"""
        try:
            async with self._pool().acquire() as conn:
                await conn.executemany(query, args)
        except STORE_ERRORS as e:
            raise BackingStoreError(str(e), operation="executemany") from e

    async def fetch(self, query: str, *args) -> list:
        """Fetch multiple rows"""
        try:
            async with self._pool().acquire() as conn:
                return await conn.fetch(query, *args)
        except STORE_ERRORS as e:
            raise BackingStoreError(str(e), operation="fetch") from e

    async def fetchrow(self, query: str, *args) -> Optional[asyncpg.Record]:
        """Fetch single row"""
        try:
            async with self._pool().acquire() as conn:
                return await conn.fetchrow(query, *args)
        except STORE_ERRORS as e:
            raise BackingStoreError(str(e), operation="fetchrow") from e

    async def fetchval(self, query: str, *args) -> Any:
        """Fetch single value"""
        try:
            async with self._pool().acquire() as conn:
                return await conn.fetchval(query, *args)
        except STORE_ERRORS as e:
            raise BackingStoreError(str(e), operation="fetchval") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run several statements atomically on one connection"""
        try:
            async with self._pool().acquire() as conn:
                async with conn.transaction():
                    yield conn
        except STORE_ERRORS as e:
            raise BackingStoreError(str(e), operation="transaction") from e
