"""Upstream HTTP client module."""

from .client import UpstreamClient

__all__ = ["UpstreamClient"]
