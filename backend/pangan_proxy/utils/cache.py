"""In-memory LRU cache with per-entry expiry.

Process-level cache for proxied upstream responses (forecasts, provinces,
cities, price tables). Each proxy route owns its own instance.
Entries carry an absolute ``expires_at``; a stale entry is dropped when read.
"""

import json
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from typing import Any


def canonical_cache_key(params: Mapping[str, Any]) -> str:
    """Build an order-independent cache key for a set of query parameters.

    ``None`` and empty-string values count as absent, so optional query
    parameters never cause key drift.

    Example:
        >>> canonical_cache_key({"b": 2, "a": 1, "c": None})
        '{"a":1,"b":2}'
    """
    normalized = {
        key: params[key]
        for key in sorted(params)
        if params[key] is not None and params[key] != ""
    }
    return json.dumps(normalized, separators=(",", ":"), ensure_ascii=False)


class LRUCache:
    """TTL-aware LRU cache for JSON-serializable responses."""

    def __init__(
        self,
        max_size: int | None = 256,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._max_size = max_size
        self._clock = clock

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._cache:
            return default
        expires_at, value = self._cache[key]
        if self._clock() >= expires_at:
            del self._cache[key]
            return default
        self._cache.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if key in self._cache:
            self._cache.move_to_end(key)
        self._cache[key] = (self._clock() + ttl_seconds, value)
        if self._max_size is not None and len(self._cache) > self._max_size:
            self._cache.popitem(last=False)

    def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
