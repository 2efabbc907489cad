"""Client for the ExchangeRate-API rate tables."""

from __future__ import annotations

import logging
from typing import Any

import requests

from whopaid.constants import (
    DEFAULT_GROUP_CURRENCY,
    EXCHANGE_RATE_API_URL,
    PIVOT_CURRENCY,
)
from whopaid.errors import ConversionError

logger = logging.getLogger(__name__)


def _as_rate(value: Any, code: str) -> float:
    """Read a rate table entry as a number."""
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConversionError(f"Invalid exchange rate for {code}: {value!r}") from e


class CurrencyService:
    """Converts amounts between currencies using the latest published rates.

    Rate tables are fetched from ``{base_url}/v4/latest/{base}``, where
    ``rates[code]`` is the number of ``code`` units worth one ``base`` unit.
    """

    def __init__(
        self,
        base_url: str = EXCHANGE_RATE_API_URL,
        timeout: float = 10,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the client."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Any) -> CurrencyService:
        """Build a client from a Flask config mapping."""
        return cls(
            base_url=config.get("EXCHANGE_RATE_API_URL", EXCHANGE_RATE_API_URL),
            timeout=config.get("EXCHANGE_RATE_TIMEOUT", 10),
        )

    def get_rates(self, base: str) -> dict[str, float]:
        """Fetch the rate table for ``base``."""
        url = f"{self.base_url}/v4/latest/{base}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ConversionError(f"Rate provider error for {base}: {e}") from e

        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise ConversionError(f"Rate provider returned no rates for {base}.")
        return rates

    def convert(
        self,
        amount: float,
        from_currency: str,
        to_currency: str = DEFAULT_GROUP_CURRENCY,
    ) -> float:
        """Convert ``amount`` from one currency to another.

        The direct table for ``from_currency`` is tried first. If it is
        unavailable or lacks ``to_currency``, the cross rate through the
        USD table is used: ``amount * rate_to / rate_from``.

        Raises:
            ConversionError: If neither strategy yields a rate.
        """
        if from_currency == to_currency:
            return amount

        try:
            direct_rate = self.get_rates(from_currency).get(to_currency)
            if direct_rate is not None:
                return amount * _as_rate(direct_rate, to_currency)
        except ConversionError as e:
            logger.warning(
                f"Direct rate {from_currency}->{to_currency} unavailable: {e}"
            )

        try:
            pivot_rates = self.get_rates(PIVOT_CURRENCY)
        except ConversionError as e:
            raise ConversionError(f"Conversion failed: {e.message}") from e

        rate_from = pivot_rates.get(from_currency)
        if rate_from is None and from_currency == PIVOT_CURRENCY:
            rate_from = 1.0
        rate_to = pivot_rates.get(to_currency)
        if rate_to is None and to_currency == PIVOT_CURRENCY:
            rate_to = 1.0

        if rate_from is None or not _as_rate(rate_from, from_currency):
            raise ConversionError(
                f"Conversion failed: exchange rate not available for {from_currency}"
            )
        if rate_to is None:
            raise ConversionError(
                f"Conversion failed: exchange rate not available for {to_currency}"
            )
        return amount * (
            _as_rate(rate_to, to_currency) / _as_rate(rate_from, from_currency)
        )

    def get_available_currencies(self) -> list[str]:
        """Return every currency code known to the provider, sorted."""
        codes = set(self.get_rates(PIVOT_CURRENCY))
        codes.add(PIVOT_CURRENCY)
        return sorted(codes)
