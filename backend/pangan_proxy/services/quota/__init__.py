"""Quota module.

Daily usage counters and least-used API key selection.
"""

from .service import InMemoryUsageStore, KeyRotator, RedisUsageStore, UsageStore

__all__ = [
    "InMemoryUsageStore",
    "KeyRotator",
    "RedisUsageStore",
    "UsageStore",
]
