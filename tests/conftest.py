# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["EXCHANGE_RATE_API_KEY"] = "test-key"  # nosec - test-only key

from src.api.deps import get_currency_service, get_db  # noqa: E402
from src.config import Settings  # noqa: E402
from src.main import app  # noqa: E402
from src.models import Base, User  # noqa: E402
from src.services import session_service  # noqa: E402
from src.services.currency_service import CurrencyService  # noqa: E402
from src.services.rate_provider import ExchangeRateProvider  # noqa: E402

# Test database setup
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


async def no_sleep(seconds: float) -> None:
    """Backoff stand-in so retry tests run instantly."""


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        exchange_rate_api_key="test-key",
    )


@pytest.fixture
def provider(settings):
    """Provider client that does not wait between retries."""
    return ExchangeRateProvider(settings, sleep=no_sleep)


@pytest.fixture
def currency_service(db_session, provider, settings):
    """Create a currency service with test database."""
    return CurrencyService(db_session, provider=provider, settings=settings)


@pytest.fixture
def test_user(db_session) -> User:
    """Create a test user holding USD."""
    user = User(
        username="testuser",
        email="test@example.com",
        currency="USD",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def client(db_session, settings):
    """Create a test client with database and rate service overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    async def override_get_currency_service():
        service = CurrencyService(
            db_session,
            provider=ExchangeRateProvider(settings, sleep=no_sleep),
            settings=settings,
        )
        try:
            yield service
        finally:
            await service.provider.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_currency_service] = override_get_currency_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def authenticated_client(client, db_session, test_user):
    """Create a client carrying a valid session cookie."""
    token = session_service.create_session(db_session, test_user.id)
    client.cookies.set("session", token)
    return client
