"""Cache store implementation.

This module provides an abstract cache store interface with a cache-aside
helper, an in-process implementation and a Redis implementation for
caching upstream proxy responses.

Cache keys are built from the request's query parameters with
``canonical_cache_key``: parameter order and absent optional parameters do
not change the key, so equivalent requests share one entry.

Entries are only written after a successful upstream call. A failing fetch
propagates to the caller and leaves the store untouched.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import redis.asyncio as redis

from pangan_proxy.utils.cache import LRUCache, canonical_cache_key

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Any]]

# get() default marking a miss; a cached None is a hit
MISS = object()


class CacheStore(ABC):
    """Abstract base class for cache stores.

    Defines the get/set/delete interface and implements ``get_or_fetch``,
    the cache-aside path used by every proxy route. TTLs are in
    milliseconds.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any:
        """Retrieve a fresh cached value by key.

        Args:
            key: The cache key to look up.
            default: Returned when the key is absent or expired.

        Returns:
            The cached value if present and not expired, ``default`` otherwise.
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        """Store a value that stays fresh for ``ttl_ms`` milliseconds.

        Args:
            key: The cache key to store under.
            value: The value to cache (must be JSON serializable).
            ttl_ms: Time-to-live in milliseconds.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a specific key from the cache.

        Returns:
            True if the key was deleted, False if it didn't exist.
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry owned by this store."""
        pass

    @staticmethod
    def build_key(params: Mapping[str, Any]) -> str:
        """Generate the cache key for a set of query parameters.

        Example:
            >>> CacheStore.build_key({"province_id": "11"})
            '{"province_id":"11"}'
        """
        return canonical_cache_key(params)

    async def get_or_fetch(
        self, params: Mapping[str, Any], ttl_ms: int, fetch: Fetch
    ) -> Any:
        """Serve ``params`` from cache, calling ``fetch`` on a miss.

        There is no single-flight guard: concurrent misses for the same key
        each call ``fetch`` and the last write wins.

        Args:
            params: Query parameters identifying the request.
            ttl_ms: Freshness window for a newly stored payload.
            fetch: Coroutine function performing the upstream call.

        Returns:
            The cached or freshly fetched payload.
        """
        key = self.build_key(params)
        cached = await self.get(key, MISS)
        if cached is not MISS:
            logger.debug(f"[CACHE] {self.name} hit {key}")
            return cached

        payload = await fetch()
        await self.set(key, payload, ttl_ms)
        logger.debug(f"[CACHE] {self.name} stored {key} for {ttl_ms}ms")
        return payload


class InMemoryCacheStore(CacheStore):
    """Process-local cache store backed by a bounded LRU map.

    Survives across requests in the same uvicorn worker. Stale entries are
    treated as misses and dropped on read; the least recently used entry is
    evicted once ``max_entries`` is exceeded.
    """

    def __init__(
        self,
        name: str,
        max_entries: int | None = 256,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(name)
        self._entries = LRUCache(max_size=max_entries, clock=clock)

    async def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        self._entries.set(key, value, ttl_ms / 1000)

    async def delete(self, key: str) -> bool:
        return self._entries.delete(key)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheStore(CacheStore):
    """Redis-based implementation of the cache store.

    Values are stored as JSON under ``cache:{name}:{key}`` and expire through
    Redis ``PX`` expiry, so several workers share one cache.

    Attributes:
        _client: The Redis async client instance.
    """

    def __init__(self, name: str, client: redis.Redis) -> None:
        """Initialize the Redis cache store.

        Args:
            name: Store name, used as the key namespace.
            client: A connected ``redis.asyncio`` client. The caller owns its
                lifecycle.
        """
        super().__init__(name)
        self._client = client
        self._prefix = f"cache:{name}:"

    async def get(self, key: str, default: Any = None) -> Any:
        value = await self._client.get(self._prefix + key)
        if value is None:
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            # Return raw value if not JSON
            return value

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        await self._client.set(self._prefix + key, json.dumps(value), px=ttl_ms)

    async def delete(self, key: str) -> bool:
        result = await self._client.delete(self._prefix + key)
        return result > 0

    async def clear(self) -> None:
        """Delete all keys in this store's namespace.

        Uses SCAN rather than KEYS so large keyspaces do not block Redis.
        """
        cursor = 0
        while True:
            cursor, keys = await self._client.scan(
                cursor=cursor, match=f"{self._prefix}*", count=100
            )
            if keys:
                await self._client.delete(*keys)
            if cursor == 0:
                break
