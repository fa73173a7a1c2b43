"""
FastAPI Dependencies

Service factories for the study-tracking routers. Every service gets the
session factory rather than a single session, so one request can run
several independent units of work.

Tests override get_session_maker and get_clock:
    app.dependency_overrides[get_session_maker] = lambda: test_session_maker
    app.dependency_overrides[get_clock] = lambda: FixedClock(...)
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studytrack.db.base import get_session_maker
from studytrack.domain.temporal import Clock, SystemClock
from studytrack.services.study import (
    ProgressSynchronizer,
    SessionLifecycleService,
    StatisticsService,
    StreakTrackingService,
)

_system_clock = SystemClock()


def get_clock() -> Clock:
    """Clock used by the services. Overridden in tests."""
    return _system_clock


def get_streak_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
) -> StreakTrackingService:
    """Get streak tracking service."""
    return StreakTrackingService(session_maker, clock)


def get_statistics_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
) -> StatisticsService:
    """Get statistics service."""
    return StatisticsService(session_maker, clock)


def get_progress_synchronizer(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    streaks: StreakTrackingService = Depends(get_streak_service),
    statistics: StatisticsService = Depends(get_statistics_service),
    clock: Clock = Depends(get_clock),
) -> ProgressSynchronizer:
    """Get progress synchronizer."""
    return ProgressSynchronizer(session_maker, streaks, statistics, clock)


def get_session_service(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    clock: Clock = Depends(get_clock),
    synchronizer: ProgressSynchronizer = Depends(get_progress_synchronizer),
) -> SessionLifecycleService:
    """Get session lifecycle service with progress synchronization."""
    return SessionLifecycleService(session_maker, clock, synchronizer)
