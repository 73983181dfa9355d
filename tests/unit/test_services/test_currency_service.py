# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Tests for currency_service."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
import respx
from httpx import Response

from src.config import Settings
from src.models import ExchangeRate
from src.services.currency_service import CurrencyService, is_supported_currency
from src.services.errors import (
    ConfigurationError,
    ProviderError,
    RateUnavailableError,
)
from tests.factories import (
    add_account,
    add_cached_rate,
    add_transaction,
    history_url,
    latest_url,
    rates_response,
)


def today() -> date:
    return datetime.utcnow().date()


class TestSupportedCurrencies:
    """Tests for the supported currency list."""

    def test_lists_ten_currencies(self):
        codes = [c.code for c in CurrencyService.get_supported_currencies()]
        assert codes == [
            "USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CHF", "CNY", "INR", "BRL",
        ]

    def test_is_supported_currency_is_case_insensitive(self):
        assert is_supported_currency("eur")
        assert not is_supported_currency("NIS")

    def test_missing_api_key_fails_service_construction(self, db_session):
        with pytest.raises(ConfigurationError):
            CurrencyService(db_session, settings=Settings(exchange_rate_api_key=None))


class TestGetRate:
    """Tests for get_rate method."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_same_currency_returns_one(self, currency_service):
        """Same currency needs no provider call."""
        assert await currency_service.get_rate("EUR", "eur") == Decimal("1")

    @respx.mock
    @pytest.mark.asyncio
    async def test_uses_fresh_cached_rate(self, currency_service, db_session):
        """A fresh cache row is returned without calling the provider."""
        add_cached_rate(db_session, today(), "0.9234")

        rate = await currency_service.get_rate("USD", "EUR")

        assert rate == Decimal("0.9234")

    @respx.mock
    @pytest.mark.asyncio
    async def test_fetches_and_caches_current_rate(self, currency_service, db_session):
        respx.get(latest_url("USD")).mock(return_value=rates_response({"EUR": 0.92}))

        rate = await currency_service.get_rate("USD", "EUR")

        assert rate == Decimal("0.92")
        cached = db_session.query(ExchangeRate).one()
        assert cached.rate_date == today()
        assert cached.rate == Decimal("0.92")
        ttl = cached.expires_at - cached.created_at
        assert timedelta(hours=23) < ttl <= timedelta(hours=24)

    @respx.mock
    @pytest.mark.asyncio
    async def test_historical_rate_cached_for_years(self, currency_service, db_session):
        respx.get(history_url("USD", date(2024, 1, 1))).mock(
            return_value=rates_response({"EUR": 0.9})
        )

        rate = await currency_service.get_rate("USD", "EUR", date(2024, 1, 1))

        assert rate == Decimal("0.9")
        cached = db_session.query(ExchangeRate).one()
        assert cached.rate_date == date(2024, 1, 1)
        assert cached.expires_at - cached.created_at > timedelta(days=9 * 365)

    @respx.mock
    @pytest.mark.asyncio
    async def test_datetime_is_truncated_to_day(self, currency_service, db_session):
        add_cached_rate(db_session, date(2024, 3, 10), "0.91")

        rate = await currency_service.get_rate(
            "USD", "EUR", datetime(2024, 3, 10, 17, 45)
        )

        assert rate == Decimal("0.91")

    @respx.mock
    @pytest.mark.asyncio
    async def test_refetch_updates_existing_row(self, currency_service, db_session):
        """An expired row is replaced in place, keeping one row per key."""
        add_cached_rate(
            db_session,
            today(),
            "0.90",
            expires_at=datetime.utcnow() - timedelta(minutes=1),
        )
        respx.get(latest_url("USD")).mock(return_value=rates_response({"EUR": 0.95}))

        await currency_service.get_rate("USD", "EUR")

        rows = db_session.query(ExchangeRate).all()
        assert len(rows) == 1
        assert rows[0].rate == Decimal("0.95")


class TestCacheExpiry:
    """Tests for cache TTL boundaries."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_expired_entry_for_today_triggers_fetch(
        self, currency_service, db_session
    ):
        add_cached_rate(
            db_session,
            today(),
            "0.90",
            created_at=datetime.utcnow() - timedelta(hours=25),
            expires_at=datetime.utcnow() - timedelta(hours=1),
        )
        route = respx.get(latest_url("USD")).mock(
            return_value=rates_response({"EUR": 0.92})
        )

        rate = await currency_service.get_rate("USD", "EUR")

        assert rate == Decimal("0.92")
        assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_old_historical_entry_is_still_a_hit(
        self, currency_service, db_session
    ):
        """Past-day rates never change, so age does not matter."""
        created = datetime.utcnow() - timedelta(days=3 * 365)
        add_cached_rate(
            db_session,
            date(2022, 6, 1),
            "0.94",
            created_at=created,
            expires_at=created.replace(year=created.year + 10),
        )

        rate = await currency_service.get_rate("USD", "EUR", date(2022, 6, 1))

        assert rate == Decimal("0.94")


class TestStaleFallback:
    """Tests for falling back to cached rates when the provider is down."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_uses_six_day_old_rate(self, currency_service, db_session):
        six_days_ago = datetime.utcnow() - timedelta(days=6)
        add_cached_rate(
            db_session,
            today() - timedelta(days=6),
            "0.91",
            created_at=six_days_ago,
            expires_at=six_days_ago + timedelta(hours=24),
        )
        route = respx.get(latest_url("USD")).mock(return_value=Response(500))

        rate = await currency_service.get_rate("USD", "EUR")

        assert rate == Decimal("0.91")
        assert route.call_count == 3

    @respx.mock
    @pytest.mark.asyncio
    async def test_rejects_eight_day_old_rate(self, currency_service, db_session):
        eight_days_ago = datetime.utcnow() - timedelta(days=8)
        add_cached_rate(
            db_session,
            today() - timedelta(days=8),
            "0.91",
            created_at=eight_days_ago,
            expires_at=eight_days_ago + timedelta(hours=24),
        )
        respx.get(latest_url("USD")).mock(return_value=Response(500))

        with pytest.raises(RateUnavailableError) as exc_info:
            await currency_service.get_rate("USD", "EUR")

        assert isinstance(exc_info.value.__cause__, ProviderError)

    @respx.mock
    @pytest.mark.asyncio
    async def test_recently_fetched_past_day_serves_as_fallback(
        self, currency_service, db_session
    ):
        """Fallback picks the newest fetch for the pair, whatever its rate_date."""
        yesterday = datetime.utcnow() - timedelta(days=1)
        add_cached_rate(
            db_session,
            date(2024, 1, 1),
            "0.90",
            created_at=yesterday,
            expires_at=yesterday + timedelta(days=3650),
        )
        add_cached_rate(
            db_session,
            today() - timedelta(days=3),
            "0.93",
            created_at=datetime.utcnow() - timedelta(days=3),
            expires_at=datetime.utcnow() - timedelta(days=2),
        )
        respx.get(latest_url("USD")).mock(return_value=Response(500))

        rate = await currency_service.get_rate("USD", "EUR")

        assert rate == Decimal("0.90")

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_cache_raises_rate_unavailable(self, currency_service):
        respx.get(latest_url("USD")).mock(return_value=Response(502))

        with pytest.raises(RateUnavailableError):
            await currency_service.get_rate("USD", "EUR")

    @respx.mock
    @pytest.mark.asyncio
    async def test_fallback_ignores_other_pairs(self, currency_service, db_session):
        add_cached_rate(db_session, today() - timedelta(days=1), "0.79", to_currency="GBP")
        respx.get(latest_url("USD")).mock(return_value=Response(500))

        with pytest.raises(RateUnavailableError):
            await currency_service.get_rate("USD", "EUR")

    @respx.mock
    @pytest.mark.asyncio
    async def test_failed_fetch_writes_nothing(self, currency_service, db_session):
        respx.get(latest_url("USD")).mock(return_value=Response(500))

        with pytest.raises(RateUnavailableError):
            await currency_service.get_rate("USD", "EUR")

        assert db_session.query(ExchangeRate).count() == 0


class TestGetHistoricalRates:
    """Tests for batch resolution of transaction-day rates."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_one_fetch_per_distinct_day(
        self, currency_service, db_session, test_user
    ):
        account = add_account(db_session, test_user, "0")
        add_transaction(db_session, account, datetime(2024, 1, 1, 9, 30), "10")
        add_transaction(db_session, account, datetime(2024, 1, 1, 18, 5), "20")
        add_transaction(db_session, account, datetime(2024, 1, 2), "30")
        jan1 = respx.get(history_url("USD", date(2024, 1, 1))).mock(
            return_value=rates_response({"EUR": 0.90})
        )
        jan2 = respx.get(history_url("USD", date(2024, 1, 2))).mock(
            return_value=rates_response({"EUR": 0.91})
        )

        rates = await currency_service.get_historical_rates(test_user.id, "USD", "EUR")

        assert rates == {
            date(2024, 1, 1): Decimal("0.90"),
            date(2024, 1, 2): Decimal("0.91"),
        }
        assert jan1.call_count == 1
        assert jan2.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_cached_days_are_not_fetched(
        self, currency_service, db_session, test_user
    ):
        account = add_account(db_session, test_user, "0")
        add_transaction(db_session, account, datetime(2024, 1, 1), "10")
        add_transaction(db_session, account, datetime(2024, 1, 2), "20")
        add_cached_rate(db_session, date(2024, 1, 1), "0.90")
        jan2 = respx.get(history_url("USD", date(2024, 1, 2))).mock(
            return_value=rates_response({"EUR": 0.91})
        )

        rates = await currency_service.get_historical_rates(test_user.id, "USD", "EUR")

        assert rates[date(2024, 1, 1)] == Decimal("0.90")
        assert rates[date(2024, 1, 2)] == Decimal("0.91")
        assert jan2.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_transactions_returns_empty_map(
        self, currency_service, test_user
    ):
        assert await currency_service.get_historical_rates(
            test_user.id, "USD", "EUR"
        ) == {}

    @respx.mock
    @pytest.mark.asyncio
    async def test_one_failing_day_fails_the_batch(
        self, currency_service, db_session, test_user
    ):
        account = add_account(db_session, test_user, "0")
        add_transaction(db_session, account, datetime(2024, 1, 1), "10")
        add_transaction(db_session, account, datetime(2024, 1, 2), "20")
        respx.get(history_url("USD", date(2024, 1, 1))).mock(
            return_value=rates_response({"EUR": 0.90})
        )
        respx.get(history_url("USD", date(2024, 1, 2))).mock(
            return_value=Response(500)
        )

        with pytest.raises(RateUnavailableError):
            await currency_service.get_historical_rates(test_user.id, "USD", "EUR")
