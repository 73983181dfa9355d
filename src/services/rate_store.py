# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Persistent exchange rate cache."""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.base import utcnow
from src.models.exchange_rate import ExchangeRate

logger = logging.getLogger(__name__)


def normalize_rate_date(value: date | datetime | None) -> date:
    """Truncate to the calendar day; None means today."""
    if value is None:
        return utcnow().date()
    if isinstance(value, datetime):
        return value.date()
    return value


def is_historical(rate_date: date) -> bool:
    """Whether the day lies strictly before today."""
    return rate_date < utcnow().date()


def compute_expiry(
    rate_date: date,
    now: datetime,
    settings: Settings | None = None,
) -> datetime:
    """Past days are kept for years, today's rate for a day."""
    settings = settings or get_settings()
    if is_historical(rate_date):
        years = settings.historical_rate_ttl_years
        try:
            return now.replace(year=now.year + years)
        except ValueError:
            # Feb 29 into a non-leap year
            return now.replace(year=now.year + years, day=28)
    return now + timedelta(hours=settings.rate_cache_ttl_hours)


def get_cached_rate(
    db: Session,
    rate_date: date,
    from_currency: str,
    to_currency: str,
) -> ExchangeRate | None:
    """Get the cache row for an exact day and pair, expired or not."""
    return (
        db.query(ExchangeRate)
        .filter(
            ExchangeRate.rate_date == rate_date,
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        )
        .first()
    )


def get_latest_cached_rate(
    db: Session,
    from_currency: str,
    to_currency: str,
) -> ExchangeRate | None:
    """Get the most recently created row for a pair, regardless of expiry."""
    # Ordered by fetch time, not rate_date: a past day fetched recently wins.
    return (
        db.query(ExchangeRate)
        .filter(
            ExchangeRate.from_currency == from_currency,
            ExchangeRate.to_currency == to_currency,
        )
        .order_by(ExchangeRate.created_at.desc())
        .first()
    )


def upsert_rate(
    db: Session,
    rate_date: date,
    from_currency: str,
    to_currency: str,
    rate: Decimal,
    settings: Settings | None = None,
) -> ExchangeRate:
    """Store a freshly fetched rate, replacing any row for the same key.

    Writes are keyed by (day, from, to), so a concurrent writer losing the
    insert race simply retries as an update.
    """
    if rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {rate}")

    now = utcnow()
    expires_at = compute_expiry(rate_date, now, settings)

    existing = get_cached_rate(db, rate_date, from_currency, to_currency)
    if existing is not None:
        existing.rate = rate
        existing.expires_at = expires_at
        db.commit()
        return existing

    entry = ExchangeRate(
        rate_date=rate_date,
        from_currency=from_currency,
        to_currency=to_currency,
        rate=rate,
        created_at=now,
        expires_at=expires_at,
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug(
            f"Concurrent insert for {from_currency}/{to_currency} on {rate_date}, "
            "updating instead"
        )
        existing = get_cached_rate(db, rate_date, from_currency, to_currency)
        if existing is None:
            raise
        existing.rate = rate
        existing.expires_at = expires_at
        db.commit()
        return existing
    return entry
