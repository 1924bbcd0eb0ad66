"""Shared test fixtures: one throwaway SQLite database for all test modules."""
from __future__ import annotations

import os
import tempfile

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import roomwatch.db.session_tables  # noqa: F401
import roomwatch.db.snapshot_tables  # noqa: F401
from roomwatch.db.engine import get_session
from roomwatch.db.tables import Base

# A file database with NullPool: the background view recorder gets its own
# connection instead of sharing the request's transaction.
TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"roomwatch-test-{os.getpid()}.db")
TEST_DB_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=NullPool)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


async def override_get_session():
    async with TestSession() as session:
        yield session


# Import app and override BEFORE any test module imports app
from roomwatch.api.main import app  # noqa: E402

app.dependency_overrides[get_session] = override_get_session

# Point the module-level session factories at the test database
import roomwatch.db.engine as _engine_mod  # noqa: E402
import roomwatch.services.profile_views as _views_mod  # noqa: E402
_engine_mod.async_session = TestSession
_engine_mod.engine = test_engine
_views_mod.async_session = TestSession

from roomwatch.services.profile_views import recorder  # noqa: E402


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    # Nothing may still be writing when the tables go away
    await recorder.drain()

    from roomwatch.middleware.metrics import metrics
    metrics.reset()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def seed():
    """``await seed(row, ...)`` inserts rows and commits."""

    async def _seed(*rows) -> None:
        async with TestSession() as session:
            session.add_all(rows)
            await session.commit()

    return _seed


@pytest_asyncio.fixture
async def db():
    async with TestSession() as session:
        yield session
