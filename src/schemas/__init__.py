"""Pydantic schemas package."""
from src.schemas.currency import (
    ConversionLogResponse,
    ConversionStatusResponse,
    ConvertCurrencyRequest,
    ConvertCurrencyResponse,
    CurrencyResponse,
    ExchangeRateResponse,
)

__all__ = [
    "ConversionLogResponse",
    "ConversionStatusResponse",
    "ConvertCurrencyRequest",
    "ConvertCurrencyResponse",
    "CurrencyResponse",
    "ExchangeRateResponse",
]
