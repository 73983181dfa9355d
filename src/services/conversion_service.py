# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Re-denominates all of a user's money from one currency into another."""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models import Account, Budget, Goal, Transaction, User
from src.models.conversion_log import CurrencyConversionLog
from src.models.enums import CurrencyCode
from src.services import conversion_log_service
from src.services.conversion_log_service import ConversionCounts
from src.services.currency_service import CurrencyService
from src.services.errors import (
    AtomicWriteFailedError,
    NoOpConversionError,
    RewriteLockTimeoutError,
)
from src.services.rate_store import normalize_rate_date

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

# SQLSTATE lock_not_available
PG_LOCK_NOT_AVAILABLE = "55P03"


@dataclass
class ConversionResult:
    """Outcome of a successful conversion."""

    log_id: uuid.UUID
    transaction_count: int
    account_count: int
    budget_count: int
    goal_count: int


class _Deadline:
    """Monotonic execution bound for the rewrite."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds
        self._expires = time.monotonic() + seconds

    def check(self) -> None:
        if time.monotonic() >= self._expires:
            raise AtomicWriteFailedError(
                f"Currency rewrite exceeded {self.seconds:g}s execution timeout"
            )


def _money(value: Decimal, rate: Decimal) -> Decimal:
    return (value * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _convert_transactions(
    db: Session,
    user_id: uuid.UUID,
    current_rate: Decimal,
    historical_rates: dict[date, Decimal],
    deadline: _Deadline,
) -> int:
    """Transactions use the rate of the day they were booked."""
    transactions = db.query(Transaction).filter(Transaction.user_id == user_id).all()
    for txn in transactions:
        deadline.check()
        day = normalize_rate_date(txn.date)
        rate = historical_rates.get(day)
        if rate is None:
            # The transaction set changed after historical rates were resolved.
            logger.warning(
                f"No historical rate for {day} (transaction {txn.id}), "
                "using current rate"
            )
            rate = current_rate
        txn.amount = _money(txn.amount, rate)
    db.flush()
    return len(transactions)


def _convert_accounts(
    db: Session,
    user_id: uuid.UUID,
    from_currency: str,
    current_rate: Decimal,
    deadline: _Deadline,
) -> int:
    accounts = db.query(Account).filter(Account.user_id == user_id).all()
    for account in accounts:
        deadline.check()
        account.balance = _money(account.balance, current_rate)
        # Lets a later re-sync reconcile against the pre-conversion currency
        account.original_currency = (
            from_currency if account.is_externally_synced else None
        )
    db.flush()
    return len(accounts)


def _convert_budgets(
    db: Session,
    user_id: uuid.UUID,
    current_rate: Decimal,
    deadline: _Deadline,
) -> int:
    budgets = db.query(Budget).filter(Budget.user_id == user_id).all()
    for budget in budgets:
        deadline.check()
        budget.amount = _money(budget.amount, current_rate)
    db.flush()
    return len(budgets)


def _convert_goals(
    db: Session,
    user_id: uuid.UUID,
    current_rate: Decimal,
    deadline: _Deadline,
) -> int:
    goals = db.query(Goal).filter(Goal.user_id == user_id).all()
    for goal in goals:
        deadline.check()
        goal.target_amount = _money(goal.target_amount, current_rate)
        goal.current_amount = _money(goal.current_amount, current_rate)
    db.flush()
    return len(goals)


def _apply_rewrite_timeouts(db: Session, settings: Settings) -> None:
    """Bound lock waits and statement time for the rewrite transaction."""
    if db.get_bind().dialect.name != "postgresql":
        return
    lock_ms = int(settings.rewrite_lock_timeout_seconds * 1000)
    statement_ms = int(settings.rewrite_timeout_seconds * 1000)
    db.execute(text(f"SET LOCAL lock_timeout = '{lock_ms}ms'"))
    db.execute(text(f"SET LOCAL statement_timeout = '{statement_ms}ms'"))


def _is_lock_timeout(error: OperationalError) -> bool:
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == PG_LOCK_NOT_AVAILABLE:
        return True
    return "database is locked" in str(orig)


def _rewrite_user_money(
    db: Session,
    log: CurrencyConversionLog,
    from_currency: str,
    to_currency: str,
    current_rate: Decimal,
    historical_rates: dict[date, Decimal],
    settings: Settings,
    started: float,
) -> ConversionCounts:
    """Convert every money field of the user and commit once.

    The conversion log is completed in the same transaction, so readers
    either see the converted data with a COMPLETED log or neither.
    """
    user_id = log.user_id
    deadline = _Deadline(settings.rewrite_timeout_seconds)
    try:
        _apply_rewrite_timeouts(db, settings)

        counts = ConversionCounts(
            transaction_count=_convert_transactions(
                db, user_id, current_rate, historical_rates, deadline
            ),
            account_count=_convert_accounts(
                db, user_id, from_currency, current_rate, deadline
            ),
            budget_count=_convert_budgets(db, user_id, current_rate, deadline),
            goal_count=_convert_goals(db, user_id, current_rate, deadline),
        )

        user = db.get(User, user_id)
        if user is None:
            raise AtomicWriteFailedError(f"User {user_id} not found")
        user.currency = to_currency

        deadline.check()
        conversion_log_service.complete_conversion(
            db, log, counts, current_rate, _elapsed_ms(started)
        )
        db.commit()
        return counts
    except OperationalError as e:
        db.rollback()
        if _is_lock_timeout(e):
            raise RewriteLockTimeoutError(
                f"Timed out waiting for locks on user {user_id} data"
            ) from e
        raise AtomicWriteFailedError(f"Currency rewrite failed: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise AtomicWriteFailedError(f"Currency rewrite failed: {e}") from e


async def convert_user_currency(
    db: Session,
    user_id: uuid.UUID,
    from_currency: CurrencyCode | str,
    to_currency: CurrencyCode | str,
    currency_service: CurrencyService | None = None,
    settings: Settings | None = None,
) -> ConversionResult:
    """Convert all transactions, accounts, budgets and goals of a user.

    Transactions use the historical rate of their booking day; balances,
    budgets and goals use the current rate. Everything is written in one
    database transaction and the user's currency switches with it.

    Args:
        db: Database session.
        user_id: Owner of the data.
        from_currency: The user's current currency.
        to_currency: Currency to convert into.
        currency_service: Rate resolver, built from settings if omitted.
        settings: Application settings.

    Returns:
        ConversionResult with the rewritten row counts.

    Raises:
        NoOpConversionError: If both currencies are the same.
        ConversionInProgressError: If a conversion is already running.
        RateUnavailableError: If a required rate cannot be obtained.
        AtomicWriteFailedError: If the rewrite failed; nothing was changed.
    """
    from_code = CurrencyCode(from_currency).value
    to_code = CurrencyCode(to_currency).value
    if from_code == to_code:
        raise NoOpConversionError("Cannot convert currency to itself")

    settings = settings or get_settings()
    owns_service = currency_service is None
    service = currency_service or CurrencyService(db, settings=settings)

    try:
        log = conversion_log_service.begin_conversion(db, user_id, from_code, to_code)
        log_id = log.id
        started = time.monotonic()
        try:
            current_rate = await service.get_rate(from_code, to_code)
            historical_rates = await service.get_historical_rates(
                user_id, from_code, to_code
            )
            counts = _rewrite_user_money(
                db,
                log,
                from_code,
                to_code,
                current_rate,
                historical_rates,
                settings,
                started,
            )
        except BaseException as e:
            db.rollback()
            try:
                conversion_log_service.fail_conversion(
                    db, log_id, e, _elapsed_ms(started)
                )
            except SQLAlchemyError:
                logger.exception(f"Could not mark conversion {log_id} as failed")
            logger.error(f"Conversion {log_id} for user {user_id} failed: {e}")
            raise
    finally:
        if owns_service:
            await service.close()

    logger.info(
        f"Conversion {log_id} for user {user_id} completed: "
        f"{counts.transaction_count} transactions, {counts.account_count} accounts, "
        f"{counts.budget_count} budgets, {counts.goal_count} goals at {current_rate}"
    )
    return ConversionResult(
        log_id=log_id,
        transaction_count=counts.transaction_count,
        account_count=counts.account_count,
        budget_count=counts.budget_count,
        goal_count=counts.goal_count,
    )
