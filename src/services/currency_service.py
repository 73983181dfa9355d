# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exchange rate resolution backed by the rate cache and the provider."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.enums import CurrencyCode
from src.models.transaction import Transaction
from src.services import rate_store
from src.services.errors import ProviderError, RateUnavailableError
from src.services.rate_provider import ExchangeRateProvider

logger = logging.getLogger(__name__)


@dataclass
class Currency:
    """Currency information."""

    code: str
    name: str
    symbol: str


SUPPORTED_CURRENCIES: dict[CurrencyCode, Currency] = {
    CurrencyCode.USD: Currency("USD", "US Dollar", "$"),
    CurrencyCode.EUR: Currency("EUR", "Euro", "€"),
    CurrencyCode.GBP: Currency("GBP", "British Pound", "£"),
    CurrencyCode.CAD: Currency("CAD", "Canadian Dollar", "CA$"),
    CurrencyCode.AUD: Currency("AUD", "Australian Dollar", "A$"),
    CurrencyCode.JPY: Currency("JPY", "Japanese Yen", "¥"),
    CurrencyCode.CHF: Currency("CHF", "Swiss Franc", "CHF"),
    CurrencyCode.CNY: Currency("CNY", "Chinese Yuan", "CN¥"),
    CurrencyCode.INR: Currency("INR", "Indian Rupee", "₹"),
    CurrencyCode.BRL: Currency("BRL", "Brazilian Real", "R$"),
}


def is_supported_currency(code: str) -> bool:
    return code.upper() in CurrencyCode.__members__


class CurrencyService:
    """Resolves current and historical exchange rates."""

    def __init__(
        self,
        db: Session,
        provider: ExchangeRateProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the currency service.

        Args:
            db: Database session for the rate cache.
            provider: Rate provider client, built from settings if omitted.
            settings: Application settings.

        Raises:
            ConfigurationError: If a provider must be built and no API key
                is configured.
        """
        self.db = db
        self.settings = settings or get_settings()
        self._owns_provider = provider is None
        self.provider = provider or ExchangeRateProvider(self.settings)

    async def close(self) -> None:
        """Close the provider client if this service created it."""
        if self._owns_provider:
            await self.provider.close()

    @staticmethod
    def get_supported_currencies() -> list[Currency]:
        return list(SUPPORTED_CURRENCIES.values())

    async def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        rate_date: date | datetime | None = None,
    ) -> Decimal:
        """Get the exchange rate for a day.

        Checks the cache first, then the provider. If the provider is down,
        falls back to the newest cached rate for the pair as long as it is
        younger than the stale limit.

        Args:
            from_currency: Source currency code.
            to_currency: Target currency code.
            rate_date: Day of the rate, None for the current rate.

        Returns:
            The exchange rate.

        Raises:
            RateUnavailableError: If neither provider nor cache can answer.
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return Decimal("1")

        day = rate_store.normalize_rate_date(rate_date)

        cached = rate_store.get_cached_rate(self.db, day, from_currency, to_currency)
        if cached is not None and cached.expires_at > rate_store.utcnow():
            return cached.rate

        try:
            rate = await self.provider.fetch_rate(
                from_currency,
                to_currency,
                day if rate_store.is_historical(day) else None,
            )
        except ProviderError as e:
            return self._stale_fallback(from_currency, to_currency, e)

        rate_store.upsert_rate(
            self.db, day, from_currency, to_currency, rate, self.settings
        )
        return rate

    def _stale_fallback(
        self,
        from_currency: str,
        to_currency: str,
        error: ProviderError,
    ) -> Decimal:
        """Use the newest cached rate for the pair if it is recent enough."""
        latest = rate_store.get_latest_cached_rate(self.db, from_currency, to_currency)
        if latest is not None:
            days_old = (rate_store.utcnow() - latest.created_at).days
            if days_old < self.settings.stale_rate_max_age_days:
                logger.warning(
                    f"Using cached {from_currency}/{to_currency} rate "
                    f"({days_old} days old)"
                )
                return latest.rate

        raise RateUnavailableError(
            "Unable to fetch exchange rates at this time. "
            "Please try again in a few minutes."
        ) from error

    async def get_historical_rates(
        self,
        user_id: uuid.UUID,
        from_currency: str,
        to_currency: str,
    ) -> dict[date, Decimal]:
        """Resolve one rate per distinct transaction day for a user.

        Days are fetched concurrently, bounded by the configured fan-out.
        If any day fails, the first error is raised once all lookups have
        settled.
        """
        rows = (
            self.db.query(Transaction.date)
            .filter(Transaction.user_id == user_id)
            .all()
        )
        days = sorted({rate_store.normalize_rate_date(row.date) for row in rows})
        if not days:
            return {}

        semaphore = asyncio.Semaphore(self.settings.rate_fetch_concurrency)

        async def resolve(day: date) -> Decimal:
            async with semaphore:
                return await self.get_rate(from_currency, to_currency, day)

        results = await asyncio.gather(
            *(resolve(day) for day in days), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        logger.info(
            f"Resolved {len(days)} historical {from_currency}/{to_currency} rates "
            f"for user {user_id}"
        )
        return dict(zip(days, results))
