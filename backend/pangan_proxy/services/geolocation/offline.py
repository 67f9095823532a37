"""Offline IP geolocation used when the live provider is unavailable.

Backed by a local MaxMind GeoLite2-City database read with ``geoip2``.
Without a configured database every lookup is a miss, and callers still
get a well-formed (empty) GeoJSON answer.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import geoip2.database
import geoip2.errors

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Jakarta"
OFFLINE_CONFIDENCE = 0.7


@dataclass
class OfflineLocation:
    """Result of an offline database lookup."""
    country: Optional[str]
    region: Optional[str]
    city: Optional[str]
    latitude: float
    longitude: float
    metro_code: Optional[int] = None
    accuracy_radius_km: Optional[int] = None
    timezone: Optional[str] = None
    network: Optional[str] = None


class OfflineGeoLocator(ABC):
    """Abstract offline locator."""

    @abstractmethod
    def lookup(self, ip: str) -> Optional[OfflineLocation]:
        pass

    def close(self) -> None:
        pass


class GeoIP2Locator(OfflineGeoLocator):
    """MaxMind database locator; a missing ``db_path`` disables lookups."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._reader: geoip2.database.Reader | None = None
        if db_path:
            try:
                self._reader = geoip2.database.Reader(db_path)
            except (OSError, RuntimeError, ValueError) as e:
                logger.warning(f"[GEO] Offline database {db_path} unavailable: {e}")

    def lookup(self, ip: str) -> Optional[OfflineLocation]:
        if self._reader is None:
            return None
        try:
            record = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return None

        if record.location.latitude is None or record.location.longitude is None:
            return None
        return OfflineLocation(
            country=record.country.iso_code,
            region=record.subdivisions.most_specific.iso_code,
            city=record.city.name,
            latitude=record.location.latitude,
            longitude=record.location.longitude,
            metro_code=record.location.metro_code,
            accuracy_radius_km=record.location.accuracy_radius,
            timezone=record.location.time_zone,
            network=str(record.traits.network) if record.traits.network else None,
        )

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None


def build_offline_feature(
    ip: str,
    location: Optional[OfflineLocation],
    queried_at: Optional[datetime] = None,
) -> dict:
    """Shape an offline lookup like the live GeoJSON Feature.

    A miss yields a null-island point with empty properties, so consumers
    always receive the same top-level structure.
    """
    queried_at = queried_at or datetime.now(timezone.utc)

    if location is None:
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [0, 0]},
            "properties": {
                "ip": ip,
                "country": None,
                "region": None,
                "city": None,
                "timezone": None,
                "provider": "geoip-lite",
                "meta": {"queried_at": queried_at.isoformat()},
            },
        }

    return {
        "type": "Feature",
        "geometry": {
            "type": "Point",
            "coordinates": [location.longitude, location.latitude],
        },
        "properties": {
            "ip": ip,
            "network": location.network,
            "country": {
                "code": location.country,
                "name": "Indonesia" if location.country == "ID" else None,
            },
            "region": location.region,
            "city": location.city,
            "location": {
                "latitude": location.latitude,
                "longitude": location.longitude,
                "metro_code": location.metro_code,
                "accuracy_radius_km": location.accuracy_radius_km,
            },
            "timezone": location.timezone or DEFAULT_TIMEZONE,
            "provider": "geoip-lite",
            "meta": {
                "queried_at": queried_at.isoformat(),
                "confidence": OFFLINE_CONFIDENCE,
            },
        },
    }
