"""BMKG weather service module."""

from .service import BmkgWeatherService, summarize_forecast

__all__ = ["BmkgWeatherService", "summarize_forecast"]
