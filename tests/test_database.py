"""
Test suite for database engine and session management.

The engine is mocked; no database server is needed.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool

from storefront.core.config import Settings
from storefront.database.connection import Database, create_engine, get_database, get_db


# ============================================================================
# Test Fixtures
# ============================================================================


@pytest.fixture
def session() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def database(session: AsyncMock) -> Database:
    engine = MagicMock()
    engine.dispose = AsyncMock()
    return Database(engine, session_factory=MagicMock(return_value=session))


def request_for(database: Database) -> SimpleNamespace:
    return SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(database=database)))


# ============================================================================
# Engine Tests
# ============================================================================


class TestCreateEngine:
    """Test engine configuration per environment."""

    def test_test_environment_disables_pooling(self) -> None:
        settings = Settings(environment="test")

        with patch("storefront.database.connection.create_async_engine") as factory:
            create_engine(settings)

        kwargs = factory.call_args.kwargs
        assert factory.call_args.args[0] == settings.database_url
        assert kwargs["poolclass"] is NullPool
        assert "pool_size" not in kwargs

    def test_other_environments_use_a_pool(self) -> None:
        settings = Settings(environment="staging", db_pool_size=7, db_max_overflow=3)

        with patch("storefront.database.connection.create_async_engine") as factory:
            create_engine(settings)

        kwargs = factory.call_args.kwargs
        assert kwargs["pool_size"] == 7
        assert kwargs["max_overflow"] == 3
        assert kwargs["pool_pre_ping"] is True
        assert "poolclass" not in kwargs


# ============================================================================
# Database Tests
# ============================================================================


class TestDatabase:
    """Test the Database session helpers."""

    @pytest.mark.asyncio
    async def test_session_commits_on_success(self, database, session) -> None:
        async with database.session() as s:
            assert s is session

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_session_rolls_back_on_error(self, database, session) -> None:
        with pytest.raises(RuntimeError):
            async with database.session():
                raise RuntimeError("boom")

        session.commit.assert_not_awaited()
        session.rollback.assert_awaited_once()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check_success(self, database) -> None:
        conn = AsyncMock()
        database.engine.connect.return_value.__aenter__.return_value = conn

        assert await database.health_check() is True
        conn.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_health_check_failure(self, database) -> None:
        conn = AsyncMock()
        conn.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))
        database.engine.connect.return_value.__aenter__.return_value = conn

        assert await database.health_check() is False

    @pytest.mark.asyncio
    async def test_dispose(self, database) -> None:
        await database.dispose()

        database.engine.dispose.assert_awaited_once()


# ============================================================================
# Dependency Tests
# ============================================================================


class TestDependencies:
    """Test the FastAPI dependencies."""

    def test_get_database(self, database) -> None:
        assert get_database(request_for(database)) is database

    @pytest.mark.asyncio
    async def test_get_db_closes_session(self, database, session) -> None:
        gen = get_db(request_for(database))

        assert await gen.__anext__() is session
        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()

        session.close.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_db_rolls_back_on_error(self, database, session) -> None:
        gen = get_db(request_for(database))
        await gen.__anext__()

        with pytest.raises(RuntimeError):
            await gen.athrow(RuntimeError("handler failed"))

        session.rollback.assert_awaited_once()
        session.close.assert_awaited_once()
