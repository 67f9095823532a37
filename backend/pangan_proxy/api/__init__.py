"""HTTP routes for the Pangan proxy API."""

from .routes import router

__all__ = ["router"]
