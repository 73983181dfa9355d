# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Exceptions raised by the currency services."""


class CurrencyServiceError(Exception):
    """Base exception for currency service errors."""


class ConfigurationError(CurrencyServiceError):
    """Required configuration (e.g. the provider API key) is missing."""


class ProviderError(CurrencyServiceError):
    """The rate provider failed or returned an unusable response."""


class RateUnavailableError(CurrencyServiceError):
    """No rate from the provider and no usable cached rate."""


class ConversionInProgressError(CurrencyServiceError):
    """Another conversion is already running for this user."""


class NoOpConversionError(CurrencyServiceError):
    """Source and target currency are the same."""


class AtomicWriteFailedError(CurrencyServiceError):
    """The atomic rewrite failed and was rolled back."""


class RewriteLockTimeoutError(AtomicWriteFailedError):
    """The rewrite could not acquire its row locks in time."""


class ConversionLogError(CurrencyServiceError):
    """Illegal state transition on a conversion log."""
