"""Pangan Proxy Services.

Service layer components:
- Cache: cache-aside stores, in-process LRU or Redis
- Quota: daily usage counters and least-used API key rotation
- Upstream: shared httpx client with timeout / error mapping
- Weather: BMKG forecasts
- Pangan: Badan Pangan food-price panel
- Geolocation: ipgeolocation.io with offline MaxMind fallback
- AI Generation: NekoLabs (primary) + Gemini (chat fallback)
"""

from .cache import CacheStore, InMemoryCacheStore, RedisCacheStore
from .quota import InMemoryUsageStore, KeyRotator, RedisUsageStore, UsageStore
from .upstream import UpstreamClient
from .weather import BmkgWeatherService
from .pangan import PanganPriceService
from .geolocation import (
    GeoIP2Locator,
    GeolocationResult,
    GeolocationService,
    OfflineGeoLocator,
)
from .ai_generation import GeminiChatFallback, NekoLabsService

__all__ = [
    # Cache
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    # Quota
    "InMemoryUsageStore",
    "KeyRotator",
    "RedisUsageStore",
    "UsageStore",
    # Upstreams
    "UpstreamClient",
    "BmkgWeatherService",
    "PanganPriceService",
    "GeoIP2Locator",
    "GeolocationResult",
    "GeolocationService",
    "OfflineGeoLocator",
    "GeminiChatFallback",
    "NekoLabsService",
]
