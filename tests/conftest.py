"""
Pytest configuration and shared test fixtures.

Settings are pinned to the test environment before the application is
imported. HTTP tests run against the ASGI app in process with the database,
the current user and the services replaced through dependency overrides.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("APP_STRIPE_SECRET_KEY", "sk_test_storefront")
os.environ.setdefault("APP_LOG_JSON", "false")

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from storefront.api.deps import get_current_user, get_order_service, get_payment_service
from storefront.core.security import create_access_token
from storefront.database.connection import Database, get_db
from storefront.database.models import Base
from storefront.database.models.user import User, UserRole
from storefront.main import app as fastapi_app
from tests.factories import make_user


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def buyer() -> User:
    return make_user(UserRole.USER)


@pytest.fixture
def admin() -> User:
    return make_user(UserRole.ADMIN)


@pytest.fixture
def mock_database() -> MagicMock:
    """Stand-in for the ``Database`` normally created during startup."""
    database = MagicMock()
    database.health_check = AsyncMock(return_value=True)
    database.dispose = AsyncMock()
    database.session_factory = MagicMock(return_value=AsyncMock())
    return database


@pytest.fixture
def app(mock_database: MagicMock):
    """The application with a fake database and no dependency overrides."""
    fastapi_app.state.database = mock_database
    fastapi_app.dependency_overrides.clear()
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Asynchronous client for the ASGI app.

    Unhandled exceptions are rendered by the application instead of being
    re-raised into the test.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def mock_order_service(app) -> AsyncMock:
    service = AsyncMock()
    app.dependency_overrides[get_order_service] = lambda: service
    return service


@pytest.fixture
def mock_payment_service(app) -> AsyncMock:
    service = AsyncMock()
    app.dependency_overrides[get_payment_service] = lambda: service
    return service


@pytest.fixture
def mock_db_session(app) -> AsyncMock:
    session = AsyncMock()
    app.dependency_overrides[get_db] = lambda: session
    return session


@pytest.fixture
def login_as(app):
    """Make requests run as the given user without a token round trip."""

    def _login(user: User) -> User:
        app.dependency_overrides[get_current_user] = lambda: user
        return user

    return _login


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict[str, str]:
        token = create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_database() -> AsyncGenerator[Database, None]:
    """
    In-memory SQLite database with the full schema.

    Sessions come from ``Database`` so they are configured exactly like the
    application's. One shared connection keeps the in-memory data alive
    across sessions.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    database = Database(engine)
    yield database
    await database.dispose()
