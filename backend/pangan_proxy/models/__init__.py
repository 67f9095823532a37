"""Data models and error types for the Pangan proxy API."""

from .core import (
    ApiKeyUsageRecord,
    AppError,
    ErrorCode,
    GeoFeature,
    GeoMeta,
    GeoPoint,
    GeoProperties,
    Province,
    WeatherSummary,
)
from .errors import (
    InvalidParameter,
    MissingParameter,
    ProxyError,
    QuotaExhausted,
    UpstreamError,
    UpstreamTimeout,
    UsageStoreError,
)

__all__ = [
    "ApiKeyUsageRecord",
    "AppError",
    "ErrorCode",
    "GeoFeature",
    "GeoMeta",
    "GeoPoint",
    "GeoProperties",
    "Province",
    "WeatherSummary",
    "InvalidParameter",
    "MissingParameter",
    "ProxyError",
    "QuotaExhausted",
    "UpstreamError",
    "UpstreamTimeout",
    "UsageStoreError",
]
