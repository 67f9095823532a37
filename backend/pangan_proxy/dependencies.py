"""
Process-wide service wiring.

Stores and upstream clients are built once in the application lifespan and
kept on ``app.state.container``. Routes get them through the ``get_*``
dependencies below, which tests replace with ``app.dependency_overrides``.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Request

from pangan_proxy.config import Settings
from pangan_proxy.services.ai_generation import GeminiChatFallback, NekoLabsService
from pangan_proxy.services.cache import CacheStore, InMemoryCacheStore, RedisCacheStore
from pangan_proxy.services.geolocation import GeoIP2Locator, GeolocationService
from pangan_proxy.services.pangan import PanganPriceService
from pangan_proxy.services.quota import (
    InMemoryUsageStore,
    KeyRotator,
    RedisUsageStore,
    UsageStore,
)
from pangan_proxy.services.weather import BmkgWeatherService

logger = logging.getLogger(__name__)

CACHE_NAMES = (
    "weather",
    "weather_forecast",
    "pangan_provinces",
    "pangan_cities",
    "pangan_prices",
)


@dataclass
class ServiceContainer:
    weather: BmkgWeatherService
    pangan: PanganPriceService
    geolocation: GeolocationService
    nekolabs: NekoLabsService
    usage_store: UsageStore
    caches: dict[str, CacheStore] = field(default_factory=dict)
    redis_client: Optional[redis.Redis] = None

    @property
    def cache_backend(self) -> str:
        return "redis" if self.redis_client is not None else "memory"

    async def close(self) -> None:
        for client in (self.weather, self.pangan, self.geolocation, self.nekolabs):
            await client.close()
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None


def build_container(settings: Settings) -> ServiceContainer:
    """Create every store and upstream client from ``settings``."""
    redis_client: Optional[redis.Redis] = None
    if settings.redis_url:
        redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )

    caches: dict[str, CacheStore] = {}
    for name in CACHE_NAMES:
        if redis_client is not None:
            caches[name] = RedisCacheStore(name, redis_client)
        else:
            caches[name] = InMemoryCacheStore(name, max_entries=settings.cache_max_entries)

    usage_store: UsageStore = (
        RedisUsageStore(redis_client) if redis_client is not None else InMemoryUsageStore()
    )

    fallback = None
    if settings.google_gemini_api_key:
        try:
            fallback = GeminiChatFallback(
                settings.google_gemini_api_key,
                timeout_seconds=settings.gemini_timeout_ms / 1000,
            )
        except Exception as e:
            logger.warning(f"[AI] Gemini fallback init failed: {e}")

    if not settings.ipgeo_api_keys:
        logger.warning("[GEO] IPGEO_API_KEYS is empty, /location will always use the offline lookup")

    return ServiceContainer(
        weather=BmkgWeatherService(
            summary_cache=caches["weather"],
            forecast_cache=caches["weather_forecast"],
            base_url=settings.bmkg_api_base,
            timeout=settings.bmkg_api_timeout_ms / 1000,
            cache_ttl_ms=settings.bmkg_cache_ttl_ms,
        ),
        pangan=PanganPriceService(
            provinces_cache=caches["pangan_provinces"],
            cities_cache=caches["pangan_cities"],
            prices_cache=caches["pangan_prices"],
            base_url=settings.pangan_api_base,
            timeout=settings.pangan_api_timeout_ms / 1000,
            cache_ttl_ms=settings.pangan_cache_ttl_ms,
            price_cache_ttl_ms=settings.pangan_price_cache_ttl_ms,
            origin=settings.pangan_origin,
            referer=settings.pangan_referer,
        ),
        geolocation=GeolocationService(
            rotator=KeyRotator(usage_store),
            offline=GeoIP2Locator(settings.geoip_db_path or None),
            api_keys=settings.ipgeo_api_keys,
            daily_limit=settings.ipgeo_daily_limit,
            base_url=settings.ipgeo_api_base,
            timeout=settings.ipgeo_api_timeout_ms / 1000,
            localhost_fallback_ip=settings.localhost_fallback_ip,
        ),
        nekolabs=NekoLabsService(
            base_url=settings.nekolabs_api_base,
            timeout=settings.nekolabs_api_timeout_ms / 1000,
            fallback=fallback,
        ),
        usage_store=usage_store,
        caches=caches,
        redis_client=redis_client,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_weather_service(request: Request) -> BmkgWeatherService:
    return get_container(request).weather


def get_pangan_service(request: Request) -> PanganPriceService:
    return get_container(request).pangan


def get_geolocation_service(request: Request) -> GeolocationService:
    return get_container(request).geolocation


def get_nekolabs_service(request: Request) -> NekoLabsService:
    return get_container(request).nekolabs
