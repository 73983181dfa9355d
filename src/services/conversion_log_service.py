# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Conversion log service; the IN_PROGRESS row is the per-user lock."""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.models.base import utcnow
from src.models.conversion_log import CurrencyConversionLog
from src.models.enums import ConversionStatus
from src.services.errors import ConversionInProgressError, ConversionLogError

logger = logging.getLogger(__name__)


@dataclass
class ConversionCounts:
    """Rows rewritten per entity type."""

    transaction_count: int = 0
    account_count: int = 0
    budget_count: int = 0
    goal_count: int = 0


def get_in_progress(db: Session, user_id: uuid.UUID) -> CurrencyConversionLog | None:
    """Get the running conversion for a user, if any."""
    return (
        db.query(CurrencyConversionLog)
        .filter(
            CurrencyConversionLog.user_id == user_id,
            CurrencyConversionLog.status == ConversionStatus.IN_PROGRESS,
        )
        .order_by(CurrencyConversionLog.started_at.desc())
        .first()
    )


def list_conversions(
    db: Session, user_id: uuid.UUID, limit: int = 10
) -> list[CurrencyConversionLog]:
    """Get a user's most recent conversions, newest first."""
    return (
        db.query(CurrencyConversionLog)
        .filter(CurrencyConversionLog.user_id == user_id)
        .order_by(CurrencyConversionLog.started_at.desc())
        .limit(limit)
        .all()
    )


def begin_conversion(
    db: Session,
    user_id: uuid.UUID,
    from_currency: str,
    to_currency: str,
) -> CurrencyConversionLog:
    """Insert an IN_PROGRESS log, acquiring the user's conversion lock.

    The insert itself is the lock: the partial unique index on
    (user_id) WHERE status = 'IN_PROGRESS' rejects a second running row.

    Raises:
        ConversionInProgressError: If a conversion is already running.
    """
    log = CurrencyConversionLog(
        user_id=user_id,
        from_currency=from_currency,
        to_currency=to_currency,
        status=ConversionStatus.IN_PROGRESS,
        started_at=utcnow(),
    )
    db.add(log)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if get_in_progress(db, user_id) is None:
            raise
        raise ConversionInProgressError(
            "Currency conversion already in progress"
        ) from e

    db.refresh(log)
    logger.info(
        f"Started conversion {log.id} for user {user_id}: "
        f"{from_currency} -> {to_currency}"
    )
    return log


def _ensure_in_progress(log: CurrencyConversionLog) -> None:
    if log.is_terminal:
        raise ConversionLogError(
            f"Conversion {log.id} already finished with status {log.status.value}"
        )


def complete_conversion(
    db: Session,
    log: CurrencyConversionLog,
    counts: ConversionCounts,
    exchange_rate: Decimal,
    duration_ms: int,
) -> CurrencyConversionLog:
    """Mark a conversion COMPLETED.

    Does not commit: the caller commits together with the rewrite so the
    completion and the converted data become visible at the same time.
    """
    _ensure_in_progress(log)
    log.status = ConversionStatus.COMPLETED
    log.exchange_rate = exchange_rate
    log.transaction_count = counts.transaction_count
    log.account_count = counts.account_count
    log.budget_count = counts.budget_count
    log.goal_count = counts.goal_count
    log.completed_at = utcnow()
    log.duration_ms = duration_ms
    db.flush()
    return log


def fail_conversion(
    db: Session,
    log_id: uuid.UUID,
    error: BaseException,
    duration_ms: int,
) -> CurrencyConversionLog:
    """Mark a conversion FAILED and commit."""
    log = db.get(CurrencyConversionLog, log_id)
    if log is None:
        raise ConversionLogError(f"Conversion {log_id} not found")
    _ensure_in_progress(log)

    log.status = ConversionStatus.FAILED
    log.error_message = str(error) or error.__class__.__name__
    log.completed_at = utcnow()
    log.duration_ms = duration_ms
    db.commit()
    return log
