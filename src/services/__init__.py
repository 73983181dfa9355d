"""Services package."""
from src.services import (
    conversion_log_service,
    conversion_service,
    currency_service,
    rate_store,
    session_service,
)

__all__ = [
    "conversion_log_service",
    "conversion_service",
    "currency_service",
    "rate_store",
    "session_service",
]
