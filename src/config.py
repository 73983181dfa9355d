# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Application settings loaded from the environment."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the currency engine."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./wealth.db"
    log_level: str = "INFO"

    # exchangerate-api.com credentials and endpoint
    exchange_rate_api_key: str | None = None
    exchange_rate_api_url: str = "https://v6.exchangerate-api.com/v6"

    # Provider client
    rate_request_timeout_seconds: float = 10.0
    rate_max_attempts: int = 3

    # Rate cache
    rate_cache_ttl_hours: int = 24
    historical_rate_ttl_years: int = 10
    stale_rate_max_age_days: int = 7
    rate_fetch_concurrency: int = 8

    # Atomic rewrite bounds
    rewrite_lock_timeout_seconds: float = 10.0
    rewrite_timeout_seconds: float = 60.0


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
