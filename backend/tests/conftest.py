"""Shared test fixtures: settings, in-memory database, users."""

import os

# Settings are read on first import of app.config; set test values first
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("APP_DEBUG", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "reward-ledger-test-signing-key-0123456789")
os.environ.pop("REDIS_URL", None)

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.models import Base  # noqa: E402
from app.models.user import User, UserStatus  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Fixed clock: a Wednesday, mid-day UTC
NOW = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Fresh schema per test. SQLite in-memory shares one connection."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    else:
        engine = create_async_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured like the application's get_db()."""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_user(test_db: AsyncSession):
    """Factory creating committed users; returns the new user's id."""

    async def _make_user(nickname: str | None = None, status: str = UserStatus.ACTIVE.value) -> str:
        nickname = nickname or f"user-{uuid4().hex[:8]}"
        user_id = str(uuid4())
        test_db.add(
            User(
                id=user_id,
                nickname=nickname,
                email=f"{nickname}@example.com",
                status=status,
            )
        )
        await test_db.commit()
        return user_id

    return _make_user


@pytest_asyncio.fixture
async def alice(make_user) -> str:
    return await make_user("alice")


@pytest_asyncio.fixture
async def bob(make_user) -> str:
    return await make_user("bob")
