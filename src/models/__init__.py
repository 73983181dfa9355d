# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Database models package."""

from src.models.account import Account
from src.models.base import Base, TimestampMixin
from src.models.budget import Budget
from src.models.conversion_log import CurrencyConversionLog
from src.models.enums import ConversionStatus, CurrencyCode
from src.models.exchange_rate import ExchangeRate
from src.models.goal import Goal
from src.models.session import UserSession
from src.models.transaction import Transaction
from src.models.user import User

__all__ = [
    "Account",
    "Base",
    "Budget",
    "ConversionStatus",
    "CurrencyCode",
    "CurrencyConversionLog",
    "ExchangeRate",
    "Goal",
    "TimestampMixin",
    "Transaction",
    "User",
    "UserSession",
]
