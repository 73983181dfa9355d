# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Account model."""

from __future__ import annotations

import uuid as uuid_lib
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from src.models.transaction import Transaction
    from src.models.user import User


class Account(Base, TimestampMixin):
    """Bank, cash or card account held by a user."""

    __tablename__ = "accounts"

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
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), default=Decimal("0"), nullable=False
    )
    # Currency the external source reports in, set after a conversion
    original_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    # Set for accounts synced from a bank-aggregation integration
    external_account_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    # Relationships
    user: Mapped[User] = relationship("User", back_populates="accounts")
    transactions: Mapped[list[Transaction]] = relationship(
        "Transaction",
        back_populates="account",
        cascade="all, delete-orphan",
    )

    @property
    def is_externally_synced(self) -> bool:
        """Whether the balance comes from an outside integration."""
        return self.external_account_id is not None
