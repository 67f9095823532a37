"""IP geolocation with key rotation and offline fallback.

Flow for one lookup:
1. Pick the least-used ipgeolocation.io key still under its daily limit
2. No key left -> 429 with an offline answer, no upstream call
3. Call the live API; on success record usage and return the normalized Feature
4. Live call failed -> offline answer tagged with the key that was tried;
   usage is not recorded for failed calls
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from pangan_proxy.models import GeoFeature, ProxyError, QuotaExhausted, UpstreamError
from pangan_proxy.services.quota import KeyRotator
from pangan_proxy.services.upstream import UpstreamClient

from .offline import OfflineGeoLocator, build_offline_feature

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESSES = ("::1", "127.0.0.1")


@dataclass
class GeolocationResult:
    """HTTP status and JSON body for a location lookup."""
    status_code: int
    body: dict


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise UpstreamError(f"Invalid coordinate from ipgeolocation.io: {value!r}") from e


def _block(data: dict, key: str) -> dict:
    """Optional sub-object of the response; anything but a dict counts as empty."""
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def normalize_ipgeolocation(
    data: Any,
    api_key: str,
    queried_at: Optional[datetime] = None,
    ip: Optional[str] = None,
) -> dict:
    """Reshape an ipgeolocation.io v2 response into the GeoJSON Feature.

    ``ip`` is used when the response does not echo the queried address.
    """
    if not isinstance(data, dict) or not isinstance(data.get("location"), dict):
        raise UpstreamError("ipgeolocation.io response has no location block")

    queried_at = queried_at or datetime.now(timezone.utc)
    location = data["location"]
    country_metadata = _block(data, "country_metadata")
    currency = _block(data, "currency")
    latitude = _to_float(location.get("latitude"))
    longitude = _to_float(location.get("longitude"))

    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [longitude, latitude]},
        "properties": {
            "ip": data.get("ip") or ip,
            "country": {
                "code": location.get("country_code2"),
                "code3": location.get("country_code3"),
                "name": location.get("country_name"),
                "official_name": location.get("country_name_official"),
                "capital": location.get("country_capital"),
                "flag": location.get("country_flag"),
                "emoji": location.get("country_emoji"),
                "is_eu": location.get("is_eu"),
            },
            "region": {
                "state_prov": location.get("state_prov"),
                "state_code": location.get("state_code"),
                "district": location.get("district"),
                "city": location.get("city"),
                "zipcode": location.get("zipcode"),
            },
            "location": {
                "latitude": latitude,
                "longitude": longitude,
                "continent_code": location.get("continent_code"),
                "continent_name": location.get("continent_name"),
                "geoname_id": location.get("geoname_id"),
            },
            "metadata": {
                "calling_code": country_metadata.get("calling_code"),
                "tld": country_metadata.get("tld"),
                "languages": country_metadata.get("languages"),
            },
            "currency": {
                "code": currency.get("code"),
                "name": currency.get("name"),
                "symbol": currency.get("symbol"),
            },
            "provider": "ipgeolocation.io",
            "meta": {
                "queried_at": queried_at.isoformat(),
                "api_version": "v2",
                "api_key_used": api_key,
            },
        },
    }


class GeolocationService(UpstreamClient):
    """ipgeolocation.io client with quota-aware key rotation."""

    NAME = "GEO"
    API_BASE = "https://api.ipgeolocation.io/v2"

    def __init__(
        self,
        rotator: KeyRotator,
        offline: OfflineGeoLocator,
        api_keys: Sequence[str],
        daily_limit: int = 1000,
        base_url: str = API_BASE,
        timeout: float = 30.0,
        localhost_fallback_ip: str = "160.22.134.39",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url, timeout, transport=transport)
        self._rotator = rotator
        self._offline = offline
        self._api_keys = list(api_keys)
        self._daily_limit = daily_limit
        self._localhost_fallback_ip = localhost_fallback_ip

    async def close(self) -> None:
        await super().close()
        self._offline.close()

    def resolve_ip(self, ip: str) -> str:
        """Map loopback addresses to a public IP so lookups stay meaningful."""
        if ip in LOOPBACK_ADDRESSES:
            return self._localhost_fallback_ip
        return ip

    def offline_feature(self, ip: str) -> dict:
        return build_offline_feature(ip, self._offline.lookup(ip))

    async def _lookup_live(self, ip: str) -> dict:
        api_key = await self._rotator.pick_available_key(self._api_keys, self._daily_limit)
        if api_key is None:
            raise QuotaExhausted("Daily quota exhausted for all API keys")

        try:
            data = await self.get_json("/ipgeo", params={"apiKey": api_key, "ip": ip})
            feature = normalize_ipgeolocation(data, api_key, ip=ip)
            # live answers must fit the GeoFeature shape
            GeoFeature.model_validate(feature)
        except (ProxyError, ValidationError) as e:
            logger.warning(f"[GEO] ipgeolocation.io failed for {ip}, using offline lookup: {e}")
            feature = self.offline_feature(ip)
            feature["properties"]["meta"]["api_key_used"] = api_key
            return feature

        await self._rotator.record_usage(api_key)
        return feature

    async def locate(self, ip: str) -> GeolocationResult:
        """Geolocate ``ip`` as a GeoJSON Feature.

        Returns:
            200 with the live or offline Feature, or 429 with the offline
            Feature under ``fallback`` when every key is exhausted.
        """
        ip = self.resolve_ip(ip)
        try:
            feature = await self._lookup_live(ip)
        except QuotaExhausted as e:
            return GeolocationResult(
                status_code=e.status_code,
                body={"error": e.message, "fallback": self.offline_feature(ip)},
            )
        return GeolocationResult(status_code=200, body=feature)
