"""
Pytest configuration and fixtures for Trip Planner tests.
"""
import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RESET_TOKEN_CLEANUP_ENABLED"] = "false"
os.environ["REDIS_URL"] = ""
os.environ["SENDGRID_API_KEY"] = ""

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, enable_sqlite_foreign_keys, get_db
from app.core.rate_limit import create_rate_limiter
from app.core.security import get_password_hash
from app.main import app
from app.models import Item, User
from app.services.email_service import SendResult, get_email_service

TEST_PASSWORD = "Test123!"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db() -> AsyncMock:
    """Create mock async database session."""
    db = AsyncMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    db.get = AsyncMock()
    return db


@pytest.fixture
def mock_email_service() -> AsyncMock:
    service = AsyncMock()
    service.send_password_reset = AsyncMock(return_value=SendResult(success=True, message_id="test"))
    service.send_welcome = AsyncMock(return_value=SendResult(success=True, message_id="test"))
    return service


@pytest.fixture
async def client(session_factory, mock_email_service) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client against the app with an isolated database, rate limiter and email stub.

    https base URL so the Secure JWT cookie is sent back.
    """
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_service] = lambda: mock_email_service
    app.state.rate_limiter = create_rate_limiter()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as c:
        yield c

    app.dependency_overrides.clear()


async def _create_user(session_factory, username: str, email: str, role: str = "user") -> User:
    async with session_factory() as session:
        user = User(
            username=username,
            email=email,
            hashed_password=get_password_hash(TEST_PASSWORD),
            role=role,
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def user(session_factory) -> User:
    return await _create_user(session_factory, "alice", "alice@example.com")


@pytest.fixture
async def admin(session_factory) -> User:
    return await _create_user(session_factory, "root", "root@example.com", role="admin")


@pytest.fixture
async def items(session_factory):
    async with session_factory() as session:
        session.add_all([Item(name="Tent", category="camping"), Item(name="Passport", category="documents")])
        await session.commit()


@pytest.fixture
def login(client):
    async def _login(username: str, password: str = TEST_PASSWORD):
        return await client.post("/api/login", json={"username": username, "password": password})
    return _login
