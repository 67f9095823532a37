"""Food-price panel service module."""

from .service import PanganPriceService

__all__ = ["PanganPriceService"]
