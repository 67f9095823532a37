"""Cache store module.

Cache-aside storage for proxied upstream responses, in-process or on Redis.
"""

from .service import CacheStore, InMemoryCacheStore, RedisCacheStore

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
]
