# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Builders for test data and provider responses."""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

from httpx import Response

from src.models import Account, Budget, ExchangeRate, Goal, Transaction, User

API_BASE = "https://v6.exchangerate-api.com/v6/test-key"


def latest_url(base: str) -> str:
    return f"{API_BASE}/latest/{base}"


def history_url(base: str, day: date) -> str:
    return f"{API_BASE}/history/{base}/{day.year}/{day.month}/{day.day}"


def rates_response(rates: dict[str, float | str]) -> Response:
    """Successful provider body; string rates are sent as raw JSON numbers."""
    body = ", ".join(f'"{code}": {rate}' for code, rate in rates.items())
    return Response(
        200,
        content=f'{{"result": "success", "conversion_rates": {{{body}}}}}',
        headers={"Content-Type": "application/json"},
    )


def error_response(error_type: str = "unsupported-code") -> Response:
    return Response(200, json={"result": "error", "error-type": error_type})


def add_account(
    db_session,
    user: User,
    balance: str,
    external_account_id: str | None = None,
) -> Account:
    account = Account(
        user_id=user.id,
        name=f"Account {uuid.uuid4().hex[:6]}",
        balance=Decimal(balance),
        external_account_id=external_account_id,
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


def add_transaction(
    db_session, account: Account, booked: datetime, amount: str
) -> Transaction:
    txn = Transaction(
        user_id=account.user_id,
        account_id=account.id,
        date=booked,
        amount=Decimal(amount),
        description="Groceries",
    )
    db_session.add(txn)
    db_session.commit()
    db_session.refresh(txn)
    return txn


def add_budget(db_session, user: User, amount: str, month: str = "2024-01") -> Budget:
    budget = Budget(user_id=user.id, month=month, amount=Decimal(amount))
    db_session.add(budget)
    db_session.commit()
    db_session.refresh(budget)
    return budget


def add_goal(db_session, user: User, target: str, current: str) -> Goal:
    goal = Goal(
        user_id=user.id,
        name="Emergency fund",
        target_amount=Decimal(target),
        current_amount=Decimal(current),
    )
    db_session.add(goal)
    db_session.commit()
    db_session.refresh(goal)
    return goal


def add_cached_rate(
    db_session,
    rate_date: date,
    rate: str,
    from_currency: str = "USD",
    to_currency: str = "EUR",
    created_at: datetime | None = None,
    expires_at: datetime | None = None,
) -> ExchangeRate:
    """Insert a cache row directly, fresh for a day unless told otherwise."""
    now = datetime.utcnow()
    entry = ExchangeRate(
        rate_date=rate_date,
        from_currency=from_currency,
        to_currency=to_currency,
        rate=Decimal(rate),
        created_at=created_at or now,
        expires_at=expires_at or now + timedelta(hours=24),
    )
    db_session.add(entry)
    db_session.commit()
    db_session.refresh(entry)
    return entry
