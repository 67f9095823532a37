"""Pangan Proxy: cached, quota-aware proxy for third-party APIs."""

__version__ = "1.0.0"
