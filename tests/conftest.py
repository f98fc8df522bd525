"""
Global test fixtures and configuration.

This module provides base fixtures for all tests:
- Database session on a fresh in-memory SQLite database per test
- Redis client (in-memory fake)
- Outbox capturing the OTP emails instead of sending them
- HTTP client with dependency overrides
- Base data fixtures (user, auth_headers)
"""

import os
import pytest
from typing import AsyncGenerator, List
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from fakeredis import FakeAsyncRedis

# Set test environment variables BEFORE importing app
os.environ["MODE"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ACCESS_TOKEN_SECRET"] = "test-access-secret"
os.environ["REFRESH_TOKEN_SECRET"] = "test-refresh-secret"
os.environ["RESET_TOKEN_SECRET"] = "test-reset-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["OTP_BCRYPT_ROUNDS"] = "4"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["ACCESS_LOG_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

from app.main import app
from app.api.dependencies import get_db, get_redis
from app.db.base import Base
from app.services.email import get_email_sender

TEST_DATABASE_URL = os.environ["DATABASE_URL"]


# ==================== Database ====================

@pytest.fixture(scope="function")
async def test_engine():
    """
    Create test database engine.

    In-memory SQLite needs a single shared connection (StaticPool), so every
    test gets a brand new database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False  # Set to True for SQL debugging
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    DB session shared by the test and the app (through the get_db override).
    """
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    session = session_factory()

    yield session

    await session.close()


# ==================== Redis ====================

@pytest.fixture(scope="function")
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    """
    Create fake Redis client (in-memory) for each test.
    """
    redis = FakeAsyncRedis()
    yield redis
    await redis.flushall()
    await redis.aclose()


# ==================== Email ====================

class RecordingEmailSender:
    """Keeps every OTP email in memory; ``fail`` simulates an SMTP outage."""

    def __init__(self):
        self.sent: List[dict] = []
        self.fail = False

    async def send_otp(self, to: str, otp: str, name: str) -> None:
        if self.fail:
            from app.core.errors import EmailDeliveryError
            raise EmailDeliveryError()
        self.sent.append({"to": to, "otp": otp, "name": name})

    def last_otp(self, to: str) -> str:
        for message in reversed(self.sent):
            if message["to"] == to:
                return message["otp"]
        raise AssertionError(f"No OTP sent to {to}")


@pytest.fixture
def outbox() -> RecordingEmailSender:
    return RecordingEmailSender()


# ==================== FastAPI Client ====================

@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    redis_client: FakeAsyncRedis,
    outbox: RecordingEmailSender,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create HTTP client for testing FastAPI endpoints.

    Overrides get_db, get_redis and get_email_sender to use test fixtures.
    """

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        yield redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_email_sender] = lambda: outbox

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Base Data Fixtures ====================

@pytest.fixture
async def user(db_session: AsyncSession):
    """
    Registered admin with password "Password123!".
    """
    from tests.factories.user import UserFactory
    user = await UserFactory.create_async(
        db_session,
        email="admin@example.com",
        name="Ann Admin",
        registration_claim=True,
    )
    await db_session.commit()
    return user


@pytest.fixture
async def auth_headers(user):
    """
    Bearer header with a valid access token for ``user``.
    """
    from app.core.tokens import create_access_token

    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


# ==================== Helper Fixtures ====================

@pytest.fixture
def anyio_backend():
    """
    Configure anyio backend for httpx AsyncClient.
    """
    return "asyncio"
