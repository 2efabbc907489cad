"""Currency conversion backed by ExchangeRate-API."""

from .services import CurrencyService

__all__ = ["CurrencyService"]
