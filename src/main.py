# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.config import get_settings
from src.logging_config import setup_logging
from src.services.errors import ConfigurationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    settings = get_settings()
    setup_logging(settings.log_level)

    if not settings.exchange_rate_api_key:
        logger.error("EXCHANGE_RATE_API_KEY is not set")
        raise ConfigurationError("Exchange rate API key not configured")

    logger.info("Currency engine ready")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Wealth",
    description="Personal finance tracker with multi-currency conversion",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(
    request: Request, exc: ConfigurationError
) -> JSONResponse:
    """Missing configuration is an operator problem, not a client one."""
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Service is not configured correctly"},
    )


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


# Import and include API router after it's created
from src.api.v1.router import api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
