"""Badan Pangan food-price panel service.

Proxies the national food-price panel (no API key, but the upstream expects
browser-like headers and a panel Origin/Referer). Three independent caches:
provinces and cities (5 minutes by default) and price tables (1 minute).
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from pangan_proxy.models import MissingParameter, Province, UpstreamError
from pangan_proxy.services.cache import CacheStore
from pangan_proxy.services.upstream import UpstreamClient

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = "https://panelharga.badanpangan.go.id"


def _unwrap(payload: Any, *path: str) -> list:
    """Follow nested ``data`` envelopes down to a list.

    A missing level yields []; anything other than a list at the end is an
    upstream format error.
    """
    for key in path:
        if not isinstance(payload, dict):
            return []
        payload = payload.get(key)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise UpstreamError(
            f"Badan Pangan returned {type(payload).__name__} where a list was expected"
        )
    return payload


class PanganPriceService(UpstreamClient):
    """Food-price panel client with per-endpoint caches."""

    NAME = "PANGAN"
    API_BASE = "https://api-panelhargav2.badanpangan.go.id/api"

    def __init__(
        self,
        provinces_cache: CacheStore,
        cities_cache: CacheStore,
        prices_cache: CacheStore,
        base_url: str = API_BASE,
        timeout: float = 15.0,
        cache_ttl_ms: int = 5 * 60 * 1000,
        price_cache_ttl_ms: int = 60 * 1000,
        origin: str = DEFAULT_ORIGIN,
        referer: str = DEFAULT_ORIGIN + "/",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "id-ID,id;q=0.9,en-US;q=0.8,en;q=0.7",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
            ),
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-origin",
            "Origin": origin,
            "Referer": referer,
        }
        super().__init__(base_url, timeout, headers=headers, transport=transport)
        self._provinces_cache = provinces_cache
        self._cities_cache = cities_cache
        self._prices_cache = prices_cache
        self._cache_ttl_ms = cache_ttl_ms
        self._price_cache_ttl_ms = price_cache_ttl_ms

    async def get_provinces(self, search: Optional[str] = None) -> list[dict]:
        """Provinces as ``[{id, name}]``, filtered upstream by ``search``."""
        params = {"search": search or ""}

        async def fetch() -> list[dict]:
            payload = await self.get_json("/provinces", params=params)
            try:
                provinces = [
                    Province(id=item.get("id"), name=item.get("nama", item.get("name")))
                    for item in _unwrap(payload, "data")
                    if isinstance(item, dict)
                ]
            except ValidationError as e:
                logger.warning(f"[PANGAN] Unexpected province entry: {e}")
                raise UpstreamError("Badan Pangan returned an unexpected province format") from e
            return [p.model_dump(mode="json") for p in provinces]

        return await self._provinces_cache.get_or_fetch(params, self._cache_ttl_ms, fetch)

    async def get_cities(self, province_id: Optional[str]) -> list:
        if not province_id:
            raise MissingParameter("province_id")
        params = {"province_id": province_id}

        async def fetch() -> list:
            payload = await self.get_json("/cities", params=params)
            return _unwrap(payload, "data", "data")

        return await self._cities_cache.get_or_fetch(params, self._cache_ttl_ms, fetch)

    async def get_prices(self, params: Mapping[str, Any]) -> list:
        """Price table for any filter combination; ``level_harga_id`` is required."""
        if not params.get("level_harga_id"):
            raise MissingParameter("level_harga_id")
        query = {k: v for k, v in params.items() if v is not None and v != ""}

        async def fetch() -> list:
            payload = await self.get_json("/front/harga-pangan-informasi", params=query)
            return _unwrap(payload, "data")

        return await self._prices_cache.get_or_fetch(query, self._price_cache_ttl_ms, fetch)
