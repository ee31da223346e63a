"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from typing import Any

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from authgate.config import Settings
from authgate.database import get_session
from authgate.main import create_app
from authgate.models import User, utcnow
from authgate.services.delivery import DeliveryBackend, DeliveryResult
from authgate.services.rate_limit import InMemoryRateLimiter
from authgate.services.sessions import SessionEngine, SessionStore
from authgate.services.telegram import BotTransport
from authgate.services.tokens import CredentialIssuer

TEST_BOT_TOKEN = "123456:TEST-bot-token"
TEST_JWT_SECRET = "test-secret-key-that-is-at-least-32-chars"


class RecordingDelivery(DeliveryBackend):
    """Captures codes instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with: DeliveryResult | None = None

    async def send(self, phone: str, code: str) -> DeliveryResult:
        self.sent.append((phone, code))
        if self.fail_with is not None:
            return self.fail_with
        return DeliveryResult(delivered=True)

    @property
    def last_code(self) -> str:
        return self.sent[-1][1]


class RecordingTransport(BotTransport):
    """Captures bot messages instead of sending them."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def notify(self, chat_id, text, reply_markup=None) -> bool:
        self.messages.append({"chat_id": chat_id, "text": text, "reply_markup": reply_markup})
        return True

    @property
    def last_text(self) -> str:
        return self.messages[-1]["text"]


class FrozenClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings() -> Settings:
    """Settings injected into every component under test."""
    return Settings(
        environment="test",
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret=TEST_JWT_SECRET,
        tg_bot_token=TEST_BOT_TOKEN,
        tg_bot_name="@authgate_test_bot",
        app_url="http://app.test",
        api_url="http://api.test",
        auth_providers=["tg", "wa", "tg-otp"],
        delivery_backend="console",
        bot_transport_backend="console",
    )


@pytest.fixture
async def test_engine(settings: Settings):
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        settings.database_url_test,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Database session bound to the test engine."""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def rate_limiter(settings: Settings) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(settings)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store(session: AsyncSession) -> SessionStore:
    return SessionStore(session)


@pytest.fixture
def engine(
    store: SessionStore,
    rate_limiter: InMemoryRateLimiter,
    delivery: RecordingDelivery,
    clock: FrozenClock,
) -> SessionEngine:
    """Session engine with a frozen clock and a recording delivery backend."""
    return SessionEngine(store, rate_limiter, delivery, clock=clock)


@pytest.fixture
def issuer(settings: Settings) -> CredentialIssuer:
    return CredentialIssuer(settings)


@pytest.fixture
def app(
    settings: Settings,
    session: AsyncSession,
    rate_limiter: InMemoryRateLimiter,
    delivery: RecordingDelivery,
    transport: RecordingTransport,
):
    """Application wired to the test database and recording collaborators."""
    app = create_app(settings)
    app.state.rate_limiter = rate_limiter
    app.state.delivery = delivery
    app.state.bot_transport = transport

    async def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def user(session: AsyncSession) -> User:
    """Create a test user."""
    user = User(wa_phone="+971509999999", name="Test User")
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def auth_headers(user: User, issuer: CredentialIssuer) -> dict[str, str]:
    """Create authorization headers for the test user."""
    token = issuer.issue(user.id, "wa").token
    return {"Authorization": f"Bearer {token}"}
