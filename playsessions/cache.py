"""
Redis connection and distributed locking for multi-process deployments.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError
from redis.exceptions import ConnectionError as RedisConnectionError

from .config import get_settings
from .utils.clock import utc_now
from .utils.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)


class CacheKeyBuilder:
    """Helper class for building consistent cache keys."""

    @staticmethod
    def event_lock(event_id: str) -> str:
        """Build key for the cross-process lock on an event's seat counter."""
        return f"lock:event:{event_id}"


class RedisCache:
    """Redis connection manager."""

    def __init__(self):
        self.client: Optional[Redis] = None
        self.pool: Optional[redis.ConnectionPool] = None

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client."""
        settings = get_settings()

        try:
            self.pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                max_connections=settings.redis_max_connections,
                retry_on_timeout=True,
                socket_keepalive=True,
                health_check_interval=30
            )
            self.client = Redis(connection_pool=self.pool)

            await self.client.ping()
            logger.info("Redis connection initialized successfully")

        except RedisConnectionError as e:
            logger.error("Failed to connect to Redis: %s", e)
            raise

    async def close(self) -> None:
        """Close Redis connections."""
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        self.client = None
        self.pool = None
        logger.info("Redis connections closed")

    @property
    def is_ready(self) -> bool:
        return self.client is not None


class DistributedLock:
    """Distributed lock implementation using Redis."""

    RELEASE_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, cache: RedisCache, key: str, timeout: int = 30):
        """
        Initialize distributed lock.

        Args:
            cache: Redis cache instance
            key: Lock key
            timeout: Lock timeout in seconds
        """
        self.cache = cache
        self.key = key
        self.timeout = timeout
        self.identifier = uuid.uuid4().hex

    async def acquire(self, blocking: bool = True, timeout: Optional[int] = None) -> bool:
        """
        Acquire the distributed lock.

        Args:
            blocking: Whether to block until lock is acquired
            timeout: Maximum time to wait for lock (seconds)

        Returns:
            True if lock acquired, False otherwise
        """
        if not self.cache.client:
            return False

        end_time = None
        if timeout:
            end_time = utc_now() + timedelta(seconds=timeout)

        while True:
            try:
                acquired = await self.cache.client.set(
                    self.key,
                    self.identifier,
                    nx=True,
                    ex=self.timeout
                )

                if acquired:
                    return True

                if not blocking:
                    return False

                if end_time and utc_now() >= end_time:
                    return False

                await asyncio.sleep(0.05)

            except RedisError as e:
                logger.warning(f"Failed to acquire lock {self.key}: {e}")
                return False

    async def release(self) -> bool:
        """
        Release the distributed lock if we still own it.

        Returns:
            True if lock released, False otherwise
        """
        if not self.cache.client:
            return False

        try:
            result = await self.cache.client.eval(
                self.RELEASE_SCRIPT, 1, self.key, self.identifier
            )
            return bool(result)

        except RedisError as e:
            logger.warning(f"Failed to release lock {self.key}: {e}")
            return False

    async def __aenter__(self):
        acquired = await self.acquire(timeout=self.timeout)
        if not acquired:
            raise ConcurrencyError(f"Could not acquire lock {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()


# Global cache instance
cache = RedisCache()


async def init_cache() -> None:
    """Initialize the global cache instance."""
    await cache.initialize()


async def close_cache() -> None:
    """Close the global cache instance."""
    await cache.close()


def get_cache() -> RedisCache:
    """Get the global cache instance."""
    return cache


@asynccontextmanager
async def distributed_lock(key: str, timeout: int = 30):
    """
    Context manager for distributed locks.

    Args:
        key: Lock key
        timeout: Lock timeout in seconds

    Usage:
        async with distributed_lock(CacheKeyBuilder.event_lock(event_id)):
            # Critical section
            pass
    """
    lock = DistributedLock(cache, key, timeout)
    async with lock:
        yield lock
