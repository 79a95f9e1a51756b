"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta

# Test database URL - in-memory SQLite unless a real database is given
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Set environment variables BEFORE any imports that might read the settings
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["OTEL_EXPORTER_OTLP_ENDPOINT"] = ""
os.environ["LOG_FORMAT"] = "console"

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from jobqueue.api.main import create_app
from jobqueue.db import create_schema, create_session_factory, get_async_session
from jobqueue.db.connection import get_test_engine
from jobqueue.db.repository import JobRepository
from jobqueue.types.job import Capability
from jobqueue.utils import utcnow


class FakeClock:
    """Settable clock returning naive UTC datetimes."""

    def __init__(self, now: datetime | None = None):
        self.now = now or utcnow().replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(scope="session")
def database_url() -> str:
    """Get the test database URL."""
    return TEST_DATABASE_URL


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the schema in place."""
    engine = get_test_engine(database_url)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    async_engine: AsyncEngine,
) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Session factory bound to the test engine, on an empty table."""
    factory = create_session_factory(async_engine)

    # Clean up test data before each test to ensure clean state
    async with factory() as session:
        await JobRepository(session).truncate()
        await session.commit()

    yield factory


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes
        await session.rollback()


@pytest_asyncio.fixture
async def app(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app whose sessions come from the test engine."""

    async def override_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_async_session] = override_session

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def clock() -> FakeClock:
    """A clock the test moves by hand."""
    return FakeClock()


@pytest.fixture
def echo_capability() -> Capability:
    """Capability for the echo job type."""
    return Capability(jobtype="echo", timeout=60, retries=0)
