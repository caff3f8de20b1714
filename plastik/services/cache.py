"""
Cache layer fronting the Discogs API.

Purpose: a small ``get/set/invalidate/flush`` capability with interchangeable
backends, so the inventory service can run cache-aside reads against Redis in
production and against a deterministic in-memory fake in tests.

Failure model: the cache is a performance aid only. When Redis is unreachable
every ``get`` is a miss and every write is a logged no-op; nothing here raises
to the caller.

Key grammar (shared with plastik.services.discogs.inventory):
    inventory:{username}:{sort}:{sort_order}:{page}:{per_page}
    listing:{listing_id}
    release:{release_id}
"""
import fnmatch
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from plastik.core.config import Settings

logger = logging.getLogger(__name__)

INVENTORY_PATTERN = "inventory:*"


def inventory_key(username: str, sort: str, sort_order: str, page: int, per_page: int) -> str:
    return f"inventory:{username}:{sort}:{sort_order}:{page}:{per_page}"


def listing_key(listing_id) -> str:
    return f"listing:{listing_id}"


def release_key(release_id) -> str:
    return f"release:{release_id}"


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


class CacheBackend(ABC):
    """Capability interface every cache backend implements."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss (including expiry and backend failure)."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serialisable value for ``ttl_seconds``."""

    @abstractmethod
    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``; return how many were removed."""

    async def flush(self, pattern: str = "*") -> int:
        return await self.invalidate(pattern)

    async def close(self) -> None:
        return None


class NullCache(CacheBackend):
    """Used when caching is switched off: every read misses, every write is dropped."""

    async def get(self, key: str) -> Optional[Any]:
        return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        return None

    async def invalidate(self, pattern: str) -> int:
        return 0


class InMemoryCache(CacheBackend):
    """
    Deterministic in-process cache.

    Values are stored serialised, as Redis would store them, so readers never
    share mutable state with writers. ``clock`` is injectable for TTL tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = (_dumps(value), self._clock() + ttl_seconds)

    async def invalidate(self, pattern: str) -> int:
        matched = [key for key in list(self._entries) if fnmatch.fnmatchcase(key, pattern)]
        for key in matched:
            self._entries.pop(key, None)
        if matched:
            logger.info(f"Cleared {len(matched)} cache entries matching pattern: {pattern}")
        return len(matched)

    def __len__(self):
        return len(self._entries)


class RedisCache(CacheBackend):
    """
    Redis-backed cache using ``redis.asyncio``.

    Every Redis error degrades to a miss / no-op with a warning.
    """

    SCAN_COUNT = 500

    def __init__(self, redis_client: aioredis.Redis):
        self.redis = redis_client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client)

    async def get(self, key: str) -> Optional[Any]:
        try:
            payload = await self.redis.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"Redis get error for {key}: {e}")
            return None
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except ValueError:
            logger.warning(f"Discarding unreadable cache entry {key}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self.redis.set(key, _dumps(value), ex=ttl_seconds)
        except (RedisError, OSError) as e:
            logger.warning(f"Redis set error for {key}: {e}")

    async def invalidate(self, pattern: str) -> int:
        try:
            keys = [key async for key in self.redis.scan_iter(match=pattern, count=self.SCAN_COUNT)]
            if not keys:
                return 0
            removed = 0
            for start in range(0, len(keys), self.SCAN_COUNT):
                removed += await self.redis.delete(*keys[start:start + self.SCAN_COUNT])
            logger.info(f"Cleared {removed} cache entries matching pattern: {pattern}")
            return removed
        except (RedisError, OSError) as e:
            logger.warning(f"Redis clear cache error for pattern {pattern}: {e}")
            return 0

    async def close(self) -> None:
        try:
            await self.redis.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis connection: {e}")


def build_cache(settings: Settings) -> CacheBackend:
    """Pick the cache backend for this process."""
    if not settings.CACHE_ENABLED:
        logger.info("Caching disabled; using NullCache")
        return NullCache()
    if settings.REDIS_URL.startswith("memory://"):
        logger.info("Using in-memory cache")
        return InMemoryCache()
    logger.info("Using Redis cache")
    return RedisCache.from_url(settings.REDIS_URL)
