"""
Redis backing store client for the Relay Service.
"""

from typing import List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from shared.errors import (
    KeyNotFoundError,
    RecordDecodeError,
    StoreConnectionError,
    StoreUnavailableError,
)


class StoreClient:
    """Store handle owned by a single session.

    Wraps the two reads the relay needs: a scalar ``GET`` and a full
    ``LRANGE``. Redis failures surface as ``StoreError`` subclasses so the
    session can decide what to do with them.
    """

    def __init__(
        self,
        redis_url: str,
        connection_pool: Optional[redis.ConnectionPool] = None,
        socket_timeout: Optional[float] = None
    ):
        self.redis_url = redis_url
        self.connection_pool = connection_pool
        self.socket_timeout = socket_timeout
        self.logger = get_logger("relay.store.client")
        self.redis: Optional[redis.Redis] = None

    async def connect(self):
        """Open the handle and verify the store answers."""
        try:
            if self.connection_pool is not None:
                self.redis = redis.Redis(connection_pool=self.connection_pool)
            else:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_timeout=self.socket_timeout,
                    single_connection_client=True
                )

            await self.redis.ping()

        except RedisError as e:
            self.logger.error("Failed to connect to store", error=str(e))
            await self.close()
            raise StoreConnectionError(str(e))

    async def close(self):
        """Release the handle. Safe to call more than once."""
        if self.redis is None:
            return

        client, self.redis = self.redis, None
        try:
            await client.aclose()
        except (RedisError, OSError) as e:
            self.logger.warning("Error closing store handle", error=str(e))

    @property
    def connected(self) -> bool:
        return self.redis is not None

    async def get_scalar(self, key: str) -> str:
        """Read a scalar value. Absent keys raise ``KeyNotFoundError``."""
        client = self._require_client()
        try:
            value = await client.get(key)
        except UnicodeDecodeError as e:
            raise RecordDecodeError(str(e), details={"key": key, "operation": "get"})
        except RedisError as e:
            raise StoreUnavailableError(str(e), details={"key": key, "operation": "get"})

        if value is None:
            raise KeyNotFoundError(key)

        return value

    async def get_list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Read an ordered list slice. Absent keys yield an empty list."""
        client = self._require_client()
        try:
            return await client.lrange(key, start, end)
        except UnicodeDecodeError as e:
            raise RecordDecodeError(str(e), details={"key": key, "operation": "lrange"})
        except RedisError as e:
            raise StoreUnavailableError(str(e), details={"key": key, "operation": "lrange"})

    async def health_check(self) -> bool:
        """Check store health."""
        if self.redis is None:
            return False
        try:
            await self.redis.ping()
            return True
        except RedisError:
            return False

    def _require_client(self) -> redis.Redis:
        if self.redis is None:
            raise StoreUnavailableError("Store handle is not connected")
        return self.redis


class StoreProvider:
    """Hands out store handles to sessions.

    ``per_session`` opens a dedicated connection for every session.
    ``shared_pool`` builds every handle over one connection pool, and
    closing a handle only returns its connection to the pool.
    """

    MODES = ("per_session", "shared_pool")

    def __init__(
        self,
        redis_url: str,
        mode: str = "per_session",
        socket_timeout: Optional[float] = None
    ):
        if mode not in self.MODES:
            raise ValueError(f"Unknown store mode: {mode}")

        self.redis_url = redis_url
        self.mode = mode
        self.socket_timeout = socket_timeout
        self.logger = get_logger("relay.store.provider")
        self._pool: Optional[redis.ConnectionPool] = None

    async def acquire(self) -> StoreClient:
        """Create and connect a store handle for one session."""
        client = StoreClient(
            self.redis_url,
            connection_pool=self._get_pool(),
            socket_timeout=self.socket_timeout
        )
        await client.connect()
        return client

    async def close(self):
        """Disconnect the shared pool, if any."""
        if self._pool is not None:
            pool, self._pool = self._pool, None
            await pool.disconnect()
            self.logger.info("Store connection pool closed")

    def _get_pool(self) -> Optional[redis.ConnectionPool]:
        if self.mode != "shared_pool":
            return None

        if self._pool is None:
            self._pool = redis.ConnectionPool.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self.socket_timeout
            )
        return self._pool
