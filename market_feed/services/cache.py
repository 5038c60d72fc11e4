"""
Fallback store for Crypto Market Feed.
Holds the last successful value per data kind or slice; used when an upstream call fails.
"""

import asyncio
import copy
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import redis.asyncio as redis
from fastapi.encoders import jsonable_encoder
from redis.asyncio.connection import ConnectionPool

from ..core.config import settings
from ..core.logging_config import create_logger

logger = create_logger(__name__)


class FallbackStore(ABC):
    """
    Key-value store of last-known-good values.

    Values are stored as JSON-compatible structures (models are encoded on
    ``put``). There is no expiry: a value is replaced only by a newer
    successful fetch. Writes are last-writer-wins.
    """

    name = "abstract"

    async def connect(self) -> None:
        """Open any underlying connection."""

    async def disconnect(self) -> None:
        """Close any underlying connection."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get(self, kind: str) -> Optional[Any]:
        """Return the stored value for ``kind`` or None."""
        pass

    @abstractmethod
    async def put(self, kind: str, value: Any) -> None:
        """Replace the stored value for ``kind``."""
        pass


class InMemoryFallbackStore(FallbackStore):
    """Process-wide dictionary store; reset on restart."""

    name = "memory"

    def __init__(self):
        self._values: Dict[str, Any] = {}

    async def get(self, kind: str) -> Optional[Any]:
        value = self._values.get(kind)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, kind: str, value: Any) -> None:
        self._values[kind] = jsonable_encoder(value)
        logger.debug("Stored fallback value", extra={"key": kind, "store": self.name})

    def clear(self) -> None:
        self._values.clear()


class RedisFallbackStore(FallbackStore):
    """Redis-backed store so several workers share the same fallback values."""

    name = "redis"

    def __init__(self, url: Optional[str] = None):
        self._url = url or settings.get_redis_url()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[redis.Redis] = None
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Initialize Redis connection pool."""
        async with self._connection_lock:
            if self._pool is None:
                try:
                    self._pool = ConnectionPool.from_url(
                        self._url,
                        max_connections=20,
                        retry_on_timeout=True,
                        socket_keepalive=True,
                        health_check_interval=30
                    )
                    self._redis = redis.Redis(connection_pool=self._pool)

                    await self._redis.ping()
                    logger.info("Successfully connected to Redis", extra={
                        "redis_host": settings.redis_host,
                        "redis_port": settings.redis_port,
                        "redis_db": settings.redis_db
                    })

                except Exception as e:
                    # Reads miss and writes are dropped until Redis answers.
                    logger.error("Failed to connect to Redis", extra={
                        "error": str(e),
                        "redis_host": settings.redis_host,
                        "redis_port": settings.redis_port
                    })

    async def disconnect(self) -> None:
        """Close Redis connection."""
        async with self._connection_lock:
            if self._redis:
                await self._redis.aclose()
                self._redis = None
            if self._pool:
                await self._pool.disconnect()
                self._pool = None
            logger.info("Disconnected from Redis")

    async def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            if not self._redis:
                return False
            await self._redis.ping()
            return True
        except Exception as e:
            logger.warning("Redis health check failed", extra={"error": str(e)})
            return False

    async def get(self, kind: str) -> Optional[Any]:
        if not self._redis:
            return None
        try:
            data = await self._redis.get(kind)
            if data is None:
                return None
            return json.loads(data)
        except Exception as e:
            logger.error("Failed to read fallback value", extra={
                "key": kind,
                "error": str(e)
            })
            return None

    async def put(self, kind: str, value: Any) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(kind, json.dumps(jsonable_encoder(value)))
            logger.debug("Stored fallback value", extra={"key": kind, "store": self.name})
        except Exception as e:
            logger.error("Failed to store fallback value", extra={
                "key": kind,
                "error": str(e)
            })


def create_fallback_store(backend: Optional[str] = None) -> FallbackStore:
    """Build the configured fallback store backend."""
    backend = backend or settings.fallback_store_backend
    if backend == "redis":
        return RedisFallbackStore()
    return InMemoryFallbackStore()
