"""BMKG weather forecast service.

Proxies the public BMKG forecast API (no API key required):
- raw forecast passthrough for ``/prakiraan-cuaca``
- a normalized current-weather summary for one village (adm4) code

Both are cache-aside with their own store, keyed by the query parameters.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from pangan_proxy.models import MissingParameter, UpstreamError, WeatherSummary
from pangan_proxy.services.cache import CacheStore
from pangan_proxy.services.upstream import UpstreamClient

logger = logging.getLogger(__name__)


def summarize_forecast(payload: Any, fetched_at: datetime) -> WeatherSummary:
    """Reduce a BMKG forecast payload to the current weather.

    The first area in ``data`` is used; its first forecast slot
    (``cuaca[0][0]``) is taken as current.
    """
    location = ""
    temperature = humidity = weather = None

    areas = payload.get("data") if isinstance(payload, dict) else None
    if areas:
        area = areas[0] or {}
        lokasi = area.get("lokasi") or {}
        location = (
            f"{lokasi.get('desa') or ''}, {lokasi.get('kecamatan') or ''}, "
            f"{lokasi.get('kota') or ''}"
        ).strip()

        cuaca = area.get("cuaca") or []
        if cuaca and cuaca[0]:
            current = cuaca[0][0] or {}
            temperature = current.get("t")
            humidity = current.get("hu")
            weather = current.get("weather_desc")

    return WeatherSummary(
        location=location,
        temperature=temperature,
        humidity=humidity,
        weather=weather,
        timestamp=fetched_at,
    )


class BmkgWeatherService(UpstreamClient):
    """BMKG forecast client with response caching."""

    NAME = "BMKG"
    API_BASE = "https://api.bmkg.go.id/publik"
    HEADERS = {
        "Accept": "application/json",
        "User-Agent": "Mozilla/5.0 (compatible; PanganJawaraBot/1.0)",
    }

    def __init__(
        self,
        summary_cache: CacheStore,
        forecast_cache: CacheStore,
        base_url: str = API_BASE,
        timeout: float = 15.0,
        cache_ttl_ms: int = 5 * 60 * 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url, timeout, headers=self.HEADERS, transport=transport)
        self._summary_cache = summary_cache
        self._forecast_cache = forecast_cache
        self._cache_ttl_ms = cache_ttl_ms

    async def get_forecast(self, params: Mapping[str, Any]) -> Any:
        """Raw forecast for the given query; ``adm4`` is required."""
        if not params.get("adm4"):
            raise MissingParameter("adm4")
        query = {k: v for k, v in params.items() if v is not None and v != ""}

        async def fetch() -> Any:
            return await self.get_json("/prakiraan-cuaca", params=query)

        return await self._forecast_cache.get_or_fetch(query, self._cache_ttl_ms, fetch)

    async def get_current_weather(self, adm4: Optional[str]) -> dict:
        """Normalized ``{location, temperature, humidity, weather, timestamp}``."""
        if not adm4:
            raise MissingParameter("adm4")

        async def fetch() -> dict:
            payload = await self.get_json("/prakiraan-cuaca", params={"adm4": adm4})
            try:
                summary = summarize_forecast(payload, datetime.now(timezone.utc))
            except (ValidationError, LookupError, TypeError, AttributeError) as e:
                logger.warning(f"[BMKG] Unexpected forecast shape for {adm4}: {e}")
                raise UpstreamError("BMKG returned an unexpected forecast format") from e
            logger.info(
                f"[BMKG] {adm4}: {summary.location or 'unknown'}, "
                f"{summary.temperature}°C, {summary.humidity}%"
            )
            return summary.model_dump(mode="json")

        return await self._summary_cache.get_or_fetch(
            {"adm4": adm4}, self._cache_ttl_ms, fetch
        )
