"""
Cache store for ArticleRAG.
Key-value storage with TTL, glob key listing and hash counters.

Two implementations are provided:
- RedisCacheStore: redis.asyncio client
- InMemoryCacheStore: process-local dict with monotonic-clock expiry
"""

import fnmatch
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

# Configure logging
logger = logging.getLogger(__name__)

# Values returned by ttl(), matching Redis
TTL_MISSING = -2
TTL_PERSISTENT = -1


class CacheStore(ABC):
    """Operations the cache service needs from a key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Value for key, or None when missing or expired."""

    @abstractmethod
    async def set_with_ttl(self, key: str, ttl: int, value: str) -> None:
        """Store value under key, expiring after ttl seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys; returns how many existed."""

    @abstractmethod
    async def keys(self, pattern: str) -> List[str]:
        """Keys matching a glob pattern."""

    @abstractmethod
    async def hincrby(self, name: str, field: str, amount: int = 1) -> int:
        """Increment a hash field; returns the new value."""

    @abstractmethod
    async def hgetall(self, name: str) -> Dict[str, str]:
        """All fields of a hash (empty when missing)."""

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining seconds; -2 when missing, -1 when the key never expires."""

    @abstractmethod
    async def info_memory(self) -> Dict[str, Any]:
        """Memory statistics; must include used_memory in bytes."""

    async def close(self) -> None:
        """Release any held connections."""


def get_redis_client(
    url: Optional[str] = None,
    connect_timeout: Optional[float] = None,
):
    """
    Get async Redis client instance.

    Args:
        url: Redis URL (default: REDIS_URL or redis://localhost:6379)
        connect_timeout: Socket connect timeout in seconds (default: 5.0)

    Returns:
        redis.asyncio.Redis instance with decoded responses
    """
    import redis.asyncio as redis

    url = url or os.getenv("REDIS_URL", "redis://localhost:6379")
    connect_timeout = connect_timeout or 5.0

    logger.debug(f"Connecting to Redis at {url} (timeout: {connect_timeout}s)")
    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=connect_timeout,
    )


class RedisCacheStore(CacheStore):
    """Cache store backed by Redis."""

    def __init__(
        self,
        url: Optional[str] = None,
        connect_timeout: Optional[float] = None,
        client: Optional[Any] = None,
    ):
        self.client = client or get_redis_client(url, connect_timeout)

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set_with_ttl(self, key: str, ttl: int, value: str) -> None:
        await self.client.setex(key, ttl, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self.client.delete(*keys))

    async def keys(self, pattern: str) -> List[str]:
        return [key async for key in self.client.scan_iter(match=pattern)]

    async def hincrby(self, name: str, field: str, amount: int = 1) -> int:
        return int(await self.client.hincrby(name, field, amount))

    async def hgetall(self, name: str) -> Dict[str, str]:
        return await self.client.hgetall(name)

    async def ttl(self, key: str) -> int:
        return int(await self.client.ttl(key))

    async def info_memory(self) -> Dict[str, Any]:
        return await self.client.info("memory")

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")


class InMemoryCacheStore(CacheStore):
    """Process-local cache store for tests and single-process runs."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        # key -> (value, expires_at)
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._hashes: Dict[str, Dict[str, int]] = {}

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._values.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._values[key]

    async def get(self, key: str) -> Optional[str]:
        self._purge_expired()
        entry = self._values.get(key)
        return entry[0] if entry else None

    async def set_with_ttl(self, key: str, ttl: int, value: str) -> None:
        self._values[key] = (value, self._clock() + ttl)

    async def delete(self, *keys: str) -> int:
        self._purge_expired()
        deleted = 0
        for key in keys:
            if self._values.pop(key, None) is not None:
                deleted += 1
            elif self._hashes.pop(key, None) is not None:
                deleted += 1
        return deleted

    async def keys(self, pattern: str) -> List[str]:
        self._purge_expired()
        return [
            key
            for key in list(self._values) + list(self._hashes)
            if fnmatch.fnmatchcase(key, pattern)
        ]

    async def hincrby(self, name: str, field: str, amount: int = 1) -> int:
        fields = self._hashes.setdefault(name, {})
        fields[field] = fields.get(field, 0) + amount
        return fields[field]

    async def hgetall(self, name: str) -> Dict[str, str]:
        return {k: str(v) for k, v in self._hashes.get(name, {}).items()}

    async def ttl(self, key: str) -> int:
        self._purge_expired()
        if key in self._hashes:
            return TTL_PERSISTENT
        entry = self._values.get(key)
        if entry is None:
            return TTL_MISSING
        _, expires_at = entry
        if expires_at is None:
            return TTL_PERSISTENT
        return max(0, int(expires_at - self._clock()))

    async def info_memory(self) -> Dict[str, Any]:
        self._purge_expired()
        used = sum(
            len(key.encode("utf-8")) + len(value.encode("utf-8"))
            for key, (value, _) in self._values.items()
        )
        return {"used_memory": used}
