"""Core data models for the Pangan proxy API.

Pydantic models for the stable response shapes this service exposes,
independent of the field names each upstream happens to use.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable error categories surfaced to API clients."""

    MISSING_PARAMETER = "MISSING_PARAMETER"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    API_ERROR = "API_ERROR"


class AppError(BaseModel):
    """Error envelope for unexpected and validation failures."""

    code: ErrorCode
    message: str = Field(..., description="Technical error message")
    user_message: str = Field(..., description="Message safe to show to end users")


class WeatherSummary(BaseModel):
    """Current weather for one BMKG village (adm4) code."""

    location: str = Field(..., description="'desa, kecamatan, kota' of the forecast area")
    temperature: Optional[float] = Field(None, description="Air temperature in Celsius")
    humidity: Optional[float] = Field(None, description="Relative humidity in percent")
    weather: Optional[str] = Field(None, description="Weather description")
    timestamp: datetime = Field(..., description="When the forecast was fetched (UTC)")


class Province(BaseModel):
    """Province entry from the food-price panel."""

    id: Any = Field(..., description="Upstream province identifier")
    name: Optional[str] = Field(None, description="Province display name")


class GeoPoint(BaseModel):
    """GeoJSON Point geometry, coordinates are [longitude, latitude]."""

    type: Literal["Point"] = "Point"
    coordinates: list[float] = Field(..., min_length=2, max_length=2)


class GeoMeta(BaseModel):
    """Provenance of a geolocation answer."""

    queried_at: datetime
    api_version: Optional[str] = None
    api_key_used: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0, le=1)


class GeoProperties(BaseModel):
    """Properties block shared by live and offline geolocation answers."""

    ip: str
    country: Optional[dict[str, Any]] = None
    region: Optional[Any] = None
    city: Optional[str] = None
    location: Optional[dict[str, Any]] = None
    metadata: Optional[dict[str, Any]] = None
    currency: Optional[dict[str, Any]] = None
    timezone: Optional[str] = None
    network: Optional[str] = None
    provider: Literal["ipgeolocation.io", "geoip-lite"]
    meta: GeoMeta


class GeoFeature(BaseModel):
    """GeoJSON Feature returned by the location endpoint."""

    type: Literal["Feature"] = "Feature"
    geometry: GeoPoint
    properties: GeoProperties


class ApiKeyUsageRecord(BaseModel):
    """Daily call counter for one upstream API key."""

    api_key: str
    usage_date: date
    usage_count: int = Field(0, ge=0)
    last_used_at: Optional[datetime] = None
