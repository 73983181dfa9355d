# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""HTTP client for the exchangerate-api.com v6 rate provider."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from decimal import Decimal

import httpx

from src.config import Settings, get_settings
from src.services.errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


class ExchangeRateProvider:
    """Fetches single rates with a per-request timeout and bounded retries.

    The client never consults the rate cache; falling back to stale rates is
    the resolver's job.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the provider client.

        Args:
            settings: Application settings, defaults to the cached instance.
            sleep: Coroutine used for backoff between attempts.

        Raises:
            ConfigurationError: If no API key is configured.
        """
        settings = settings or get_settings()
        if not settings.exchange_rate_api_key:
            raise ConfigurationError("Exchange rate API key not configured")

        self._api_key = settings.exchange_rate_api_key
        self._base_url = settings.exchange_rate_api_url.rstrip("/")
        self._timeout = settings.rate_request_timeout_seconds
        self._max_attempts = settings.rate_max_attempts
        self._sleep = sleep
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=f"{self._base_url}/{self._api_key}",
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @staticmethod
    def build_path(from_currency: str, rate_date: date | None = None) -> str:
        """Pick the history endpoint for past days, latest otherwise."""
        today = datetime.utcnow().date()
        if rate_date is not None and rate_date < today:
            return (
                f"/history/{from_currency}/"
                f"{rate_date.year}/{rate_date.month}/{rate_date.day}"
            )
        return f"/latest/{from_currency}"

    async def fetch_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate_date: date | None = None,
    ) -> Decimal:
        """Fetch one rate, retrying with exponential backoff.

        Args:
            from_currency: Base currency code.
            to_currency: Target currency code.
            rate_date: Day of the rate, None for the latest rate.

        Returns:
            The rate at full provider precision.

        Raises:
            ProviderError: If every attempt failed.
        """
        path = self.build_path(from_currency, rate_date)
        last_error: Exception | None = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                client = await self._get_client()
                try:
                    # Bounds the whole attempt, body read included
                    response = await asyncio.wait_for(client.get(path), self._timeout)
                except TimeoutError as e:
                    raise ProviderError(
                        f"Rate request exceeded {self._timeout:g}s timeout"
                    ) from e
                response.raise_for_status()
                return self._parse_rate(response, from_currency, to_currency)
            except (httpx.HTTPError, ProviderError) as e:
                last_error = e
                logger.warning(
                    f"Rate fetch {from_currency}->{to_currency} attempt "
                    f"{attempt}/{self._max_attempts} failed: {self._redact(e)}"
                )
                if attempt < self._max_attempts:
                    # 2s, 4s, 8s, ...
                    await self._sleep(2**attempt)

        message = (
            f"Failed to fetch exchange rate after {self._max_attempts} attempts: "
            f"{self._redact(last_error)}"
        )
        logger.error(message)
        raise ProviderError(message) from last_error

    @staticmethod
    def _parse_rate(
        response: httpx.Response, from_currency: str, to_currency: str
    ) -> Decimal:
        """Validate the body and extract the target rate as a Decimal."""
        try:
            data = response.json(parse_float=Decimal, parse_int=Decimal)
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from rate provider: {e}") from e

        if not isinstance(data, dict) or data.get("result") != "success":
            error_type = data.get("error-type") if isinstance(data, dict) else None
            raise ProviderError(
                f"Exchange rate API error: {error_type or 'Unknown error'}"
            )

        rates = data.get("conversion_rates")
        rate = rates.get(to_currency) if isinstance(rates, dict) else None
        if not isinstance(rate, Decimal) or not rate.is_finite() or rate <= 0:
            raise ProviderError(
                f"No conversion rate found for {from_currency} to {to_currency}"
            )
        return rate

    def _redact(self, error: Exception | None) -> str:
        """Keep the API key (part of the URL path) out of log lines."""
        return str(error).replace(self._api_key, "***")
