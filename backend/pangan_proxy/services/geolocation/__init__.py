"""IP geolocation service module.

Live lookups through ipgeolocation.io with daily key quotas, and an offline
MaxMind fallback that keeps the same GeoJSON shape.
"""

from .offline import (
    GeoIP2Locator,
    OfflineGeoLocator,
    OfflineLocation,
    build_offline_feature,
)
from .service import GeolocationResult, GeolocationService, normalize_ipgeolocation

__all__ = [
    "GeoIP2Locator",
    "OfflineGeoLocator",
    "OfflineLocation",
    "build_offline_feature",
    "GeolocationResult",
    "GeolocationService",
    "normalize_ipgeolocation",
]
