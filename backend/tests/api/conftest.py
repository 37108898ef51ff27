"""Test fixtures for API integration tests."""

from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import UserStatus
from app.utils.db import get_db
from app.utils.security import create_access_token


# =============================================================================
# FastAPI App & Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_app(test_db: AsyncSession):
    """The application with its database dependency bound to the test session."""
    from app.main import app

    async def override_get_db():
        """Override that commits after each request like production get_db()."""
        try:
            yield test_db
            await test_db.commit()
        except Exception:
            await test_db.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# =============================================================================
# Auth Fixtures
# =============================================================================


def bearer(user_id: str, expires_delta: timedelta | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, expires_delta)}"}


@pytest.fixture
def auth_headers(alice: str) -> dict[str, str]:
    """Authorization headers for alice."""
    return bearer(alice)


@pytest.fixture
def auth_headers_bob(bob: str) -> dict[str, str]:
    """Authorization headers for bob."""
    return bearer(bob)


@pytest.fixture
def invalid_auth_headers() -> dict[str, str]:
    return {"Authorization": "Bearer invalid-token-12345"}


@pytest.fixture
def expired_auth_headers(alice: str) -> dict[str, str]:
    return bearer(alice, timedelta(minutes=-5))


@pytest_asyncio.fixture
async def suspended_auth_headers(make_user) -> dict[str, str]:
    user_id = await make_user("mallory", status=UserStatus.SUSPENDED.value)
    return bearer(user_id)
