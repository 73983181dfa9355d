# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Currency conversion log, doubling as the per-user conversion lock."""

from __future__ import annotations

import uuid as uuid_lib
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base
from src.models.enums import ConversionStatus

if TYPE_CHECKING:
    from src.models.user import User

IN_PROGRESS_CLAUSE = text("status = 'IN_PROGRESS'")


class CurrencyConversionLog(Base):
    """Audit row for one conversion attempt.

    At most one row per user may be IN_PROGRESS; the partial unique index
    below is what serialises conversions across processes.
    """

    __tablename__ = "currency_conversion_logs"
    __table_args__ = (
        Index(
            "uq_conversion_in_progress_per_user",
            "user_id",
            unique=True,
            postgresql_where=IN_PROGRESS_CLAUSE,
            sqlite_where=IN_PROGRESS_CLAUSE,
        ),
    )

    id: Mapped[uuid_lib.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid_lib.uuid4,
    )
    user_id: Mapped[uuid_lib.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    to_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[ConversionStatus] = mapped_column(
        Enum(ConversionStatus),
        default=ConversionStatus.IN_PROGRESS,
        nullable=False,
    )
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 8), nullable=True
    )
    transaction_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    account_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    budget_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    goal_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped[User] = relationship("User", back_populates="conversion_logs")

    @property
    def is_terminal(self) -> bool:
        return self.status != ConversionStatus.IN_PROGRESS
