# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Currency API endpoints."""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from src.api.deps import get_current_user, get_currency_service, get_db
from src.models import User
from src.schemas.currency import (
    ConversionLogResponse,
    ConversionStatusResponse,
    ConvertCurrencyRequest,
    ConvertCurrencyResponse,
    CurrencyResponse,
    ExchangeRateResponse,
)
from src.services import conversion_log_service
from src.services.conversion_service import convert_user_currency
from src.services.currency_service import CurrencyService, is_supported_currency
from src.services.errors import (
    AtomicWriteFailedError,
    ConversionInProgressError,
    NoOpConversionError,
    RateUnavailableError,
    RewriteLockTimeoutError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/currencies", response_model=list[CurrencyResponse])
def list_currencies() -> list[CurrencyResponse]:
    """Get list of supported currencies."""
    return [
        CurrencyResponse(code=c.code, name=c.name, symbol=c.symbol)
        for c in CurrencyService.get_supported_currencies()
    ]


@router.get("/currencies/rate", response_model=ExchangeRateResponse)
async def get_exchange_rate(
    from_currency: str = Query(..., min_length=3, max_length=3, alias="from"),
    to_currency: str = Query(..., min_length=3, max_length=3, alias="to"),
    rate_date: date | None = Query(None, alias="date"),
    current_user: User = Depends(get_current_user),
    service: CurrencyService = Depends(get_currency_service),
) -> ExchangeRateResponse:
    """Preview the exchange rate between two currencies."""
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()

    for code in (from_currency, to_currency):
        if not is_supported_currency(code):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported currency: {code}",
            )
    if from_currency == to_currency:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot convert currency to itself",
        )
    if rate_date is not None and rate_date > datetime.utcnow().date():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot fetch exchange rates for future dates",
        )

    try:
        rate = await service.get_rate(from_currency, to_currency, rate_date)
    except RateUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e

    return ExchangeRateResponse(
        from_currency=from_currency,
        to_currency=to_currency,
        rate=str(rate),
        rate_date=rate_date or datetime.utcnow().date(),
    )


@router.post("/currencies/convert", response_model=ConvertCurrencyResponse)
async def convert_currency(
    data: ConvertCurrencyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: CurrencyService = Depends(get_currency_service),
) -> ConvertCurrencyResponse:
    """Convert all of the user's transactions, accounts, budgets and goals."""
    to_currency = data.to_currency.value
    if current_user.currency == to_currency:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Currency is already set to {to_currency}",
        )

    try:
        result = await convert_user_currency(
            db,
            current_user.id,
            current_user.currency,
            to_currency,
            currency_service=service,
        )
    except NoOpConversionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ConversionInProgressError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Currency conversion already in progress. "
            "Please wait for it to complete.",
        ) from e
    except RateUnavailableError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e
    except RewriteLockTimeoutError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Your data is busy right now. Please try again shortly.",
        ) from e
    except AtomicWriteFailedError as e:
        logger.error(f"Conversion write failed for user {current_user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Currency conversion failed. Please try again.",
        ) from e

    return ConvertCurrencyResponse(
        log_id=result.log_id,
        transaction_count=result.transaction_count,
        account_count=result.account_count,
        budget_count=result.budget_count,
        goal_count=result.goal_count,
    )


@router.get("/currencies/conversions", response_model=list[ConversionLogResponse])
def get_conversion_history(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ConversionLogResponse]:
    """Get the user's last 10 conversions."""
    logs = conversion_log_service.list_conversions(db, current_user.id, limit=10)
    return [ConversionLogResponse.from_log(log) for log in logs]


@router.get(
    "/currencies/conversions/status", response_model=ConversionStatusResponse
)
def get_conversion_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ConversionStatusResponse:
    """Report whether a conversion is running, for polling."""
    in_progress = conversion_log_service.get_in_progress(db, current_user.id)
    if in_progress is None:
        return ConversionStatusResponse(status="IDLE")
    return ConversionStatusResponse(
        status="IN_PROGRESS",
        from_currency=in_progress.from_currency,
        to_currency=in_progress.to_currency,
        started_at=in_progress.started_at,
    )
