# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Currency and conversion schemas."""

import datetime
import uuid
from typing import Literal

from pydantic import BaseModel

from src.models.conversion_log import CurrencyConversionLog
from src.models.enums import ConversionStatus, CurrencyCode


class CurrencyResponse(BaseModel):
    """Supported currency."""

    code: str
    name: str
    symbol: str


class ExchangeRateResponse(BaseModel):
    """Exchange rate preview.

    Rates are strings so no precision is lost in JSON.
    """

    from_currency: str
    to_currency: str
    rate: str
    rate_date: datetime.date


class ConvertCurrencyRequest(BaseModel):
    """Request to convert all of the user's data."""

    to_currency: CurrencyCode


class ConvertCurrencyResponse(BaseModel):
    """Row counts of a completed conversion."""

    success: bool = True
    log_id: uuid.UUID
    transaction_count: int
    account_count: int
    budget_count: int
    goal_count: int


class ConversionLogResponse(BaseModel):
    """One entry of the conversion history."""

    id: uuid.UUID
    from_currency: str
    to_currency: str
    exchange_rate: str | None
    status: ConversionStatus
    error_message: str | None
    transaction_count: int
    account_count: int
    budget_count: int
    goal_count: int
    started_at: datetime.datetime
    completed_at: datetime.datetime | None
    duration_ms: int | None

    @classmethod
    def from_log(cls, log: CurrencyConversionLog) -> "ConversionLogResponse":
        return cls(
            id=log.id,
            from_currency=log.from_currency,
            to_currency=log.to_currency,
            exchange_rate=(
                str(log.exchange_rate) if log.exchange_rate is not None else None
            ),
            status=log.status,
            error_message=log.error_message,
            transaction_count=log.transaction_count,
            account_count=log.account_count,
            budget_count=log.budget_count,
            goal_count=log.goal_count,
            started_at=log.started_at,
            completed_at=log.completed_at,
            duration_ms=log.duration_ms,
        )


class ConversionStatusResponse(BaseModel):
    """Whether a conversion is currently running for the user."""

    status: Literal["IN_PROGRESS", "IDLE"]
    from_currency: str | None = None
    to_currency: str | None = None
    started_at: datetime.datetime | None = None
