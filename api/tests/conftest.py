"""Pytest configuration and shared fixtures.

This module provides:
- In-memory SQLite (aiosqlite) engine and session fixtures
- In-memory fakes for the streak engine's submission/history stores
- A FastAPI test client wired to the test database
- A canned LeetCode submission fetcher
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STREAK_REFRESH_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from core.config import clear_settings_cache
from core.database import Base
from core.wide_event import init_wide_event
from tests.fakes import FakeLeetCode, InMemoryHistoryStore, InMemorySubmissionStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Services set wide-event fields; middleware normally initializes them."""
    init_wide_event()
    yield


@pytest.fixture
def reset_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database per test (StaticPool keeps one connection alive)."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_maker() as session:
        yield session


# =============================================================================
# Engine fakes
# =============================================================================


@pytest.fixture
def submission_store() -> InMemorySubmissionStore:
    return InMemorySubmissionStore()


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def fake_leetcode() -> FakeLeetCode:
    return FakeLeetCode()


# =============================================================================
# FastAPI client
# =============================================================================


@pytest_asyncio.fixture
async def client(
    test_engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient]:
    """HTTP client against the app, bypassing lifespan and rate limits."""
    from core.ratelimit import limiter
    from main import app

    app.state.engine = test_engine
    app.state.session_maker = session_maker
    limiter.enabled = False

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    limiter.enabled = True
