"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit and integration tests.

Database tests run against a temporary SQLite file (aiosqlite) created per
test, so they need no running services. The environment is pointed at
SQLite before any studytrack module is imported, since settings and the
module-level engine are built at import time.
"""

import os
import sys
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest
import pytest_asyncio

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite:///:memory:"
os.environ["CREATE_TABLES_ON_STARTUP"] = "false"
os.environ["STATS_TIMEZONE"] = "UTC"

import httpx  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from studytrack.db.base import Base, build_engine  # noqa: E402
from studytrack.db.models import StudySession, Topic, User  # noqa: E402
from studytrack.domain.temporal import FixedClock  # noqa: E402
from studytrack.services.study import (  # noqa: E402
    ProgressSynchronizer,
    SessionLifecycleService,
    StatisticsService,
    StreakTrackingService,
)

# Friday 2024-03-15 09:00 UTC
REFERENCE_NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Clock
# ============================================================================


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at REFERENCE_NOW; tests move it with advance()."""
    return FixedClock(REFERENCE_NOW)


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine on a fresh SQLite file with all tables created.

    NullPool gives every session its own connection, like concurrent
    requests against a real server.
    """
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'studytrack-test.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def streak_service(session_maker, clock) -> StreakTrackingService:
    return StreakTrackingService(session_maker, clock)


@pytest.fixture
def statistics_service(session_maker, clock) -> StatisticsService:
    return StatisticsService(session_maker, clock)


@pytest.fixture
def synchronizer(
    session_maker, streak_service, statistics_service, clock
) -> ProgressSynchronizer:
    return ProgressSynchronizer(session_maker, streak_service, statistics_service, clock)


@pytest.fixture
def session_service(session_maker, clock, synchronizer) -> SessionLifecycleService:
    return SessionLifecycleService(session_maker, clock, synchronizer)


# ============================================================================
# Data Factories
# ============================================================================


@pytest.fixture
def make_user(session_maker) -> Callable[..., Awaitable[User]]:
    """Factory inserting a user. Each call gets a unique username/email."""
    counter = {"n": 0}

    async def _make(tz: str = "UTC", **overrides: Any) -> User:
        counter["n"] += 1
        values = {
            "username": f"learner{counter['n']}",
            "email": f"learner{counter['n']}@example.com",
            "timezone": tz,
            "achievements": [],
        }
        values.update(overrides)
        async with session_maker() as db:
            user = User(**values)
            db.add(user)
            await db.commit()
            await db.refresh(user)
            return user

    return _make


@pytest.fixture
def make_topic(session_maker) -> Callable[..., Awaitable[Topic]]:
    """Factory inserting a topic, optionally with milestones."""

    async def _make(
        title: str = "Go Concurrency",
        category: str = "Programming",
        milestones: Optional[list[dict[str, Any]]] = None,
        **overrides: Any,
    ) -> Topic:
        values = {
            "title": title,
            "category": category,
            "milestones": milestones or [],
            "resources": [],
            "tags": [],
        }
        values.update(overrides)
        async with session_maker() as db:
            topic = Topic(**values)
            db.add(topic)
            await db.commit()
            await db.refresh(topic)
            return topic

    return _make


@pytest.fixture
def seed_completed_session(session_maker) -> Callable[..., Awaitable[StudySession]]:
    """
    Factory inserting an already completed session row directly.

    Bypasses the lifecycle so history can be laid out at arbitrary times.
    """

    async def _seed(
        user_id: int,
        topic_id: int,
        start: datetime,
        minutes: int = 30,
        session_type: str = "focused",
        productivity_rating: Optional[int] = None,
        average_focus_level: Optional[float] = None,
        break_count: int = 0,
    ) -> StudySession:
        async with session_maker() as db:
            row = StudySession(
                user_id=user_id,
                topic_id=topic_id,
                session_type=session_type,
                planned_duration=minutes,
                actual_duration=minutes,
                start_time=start,
                end_time=start + timedelta(minutes=minutes),
                status="completed",
                is_completed=True,
                paused_time=0,
                productivity_rating=productivity_rating,
                average_focus_level=average_focus_level,
                breaks=[],
                break_count=break_count,
                tags=[],
                version=2,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return row

    return _seed


# ============================================================================
# API Client
# ============================================================================


@pytest_asyncio.fixture
async def api_client(session_maker, clock) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    HTTP client against the app with the test database and clock injected.
    """
    from studytrack.db.base import get_session_maker
    from studytrack.dependencies import get_clock
    from studytrack.main import app

    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_clock] = lambda: clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
