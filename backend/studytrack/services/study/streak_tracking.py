"""
Study Streak Tracking Service

Tracks study streaks from completed study sessions.

Responsibilities:
- Calculate current and longest study streaks in the user's timezone
- Track streak milestones
- Count active days in the last week/month

Usage:
    from studytrack.services.study.streak_tracking import StreakTrackingService

    service = StreakTrackingService(async_session_maker, clock)
    streak = await service.get_streak_data(user_id)
"""

from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studytrack.config import settings
from studytrack.db.models import StudySession, User
from studytrack.domain.streaks import (
    StreakResult,
    calculate_streaks,
    count_days_in_period,
    milestones_reached,
    next_milestone,
    study_days,
)
from studytrack.domain.temporal import Clock, SystemClock, resolve_timezone, today_in
from studytrack.middleware.error_handling import NotFoundError
from studytrack.models.study import StreakData


class StreakTrackingService:
    """
    Service for tracking study streaks.

    Streaks are always recomputed from the session history rather than
    incremented, so an out-of-order or late completion can't corrupt them.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ):
        self.session_maker = session_maker
        self.clock = clock or SystemClock()

    async def get_user_timezone(self, user_id: int) -> ZoneInfo:
        """
        The user's configured timezone.

        Raises:
            NotFoundError: Unknown user.
        """
        async with self.session_maker() as db:
            tz_name = await db.scalar(select(User.timezone).where(User.id == user_id))
            exists = tz_name is not None or await db.get(User, user_id) is not None
        if not exists:
            raise NotFoundError(f"User {user_id} not found")
        return resolve_timezone(tz_name, settings.DEFAULT_USER_TIMEZONE)

    async def fetch_study_days(self, user_id: int, tz: ZoneInfo) -> list[date]:
        """
        Distinct calendar days (in `tz`) with at least one completed session.

        Returns:
            list[date]: Ascending, deduplicated.
        """
        async with self.session_maker() as db:
            result = await db.execute(
                select(StudySession.start_time).where(
                    StudySession.user_id == user_id,
                    StudySession.is_completed.is_(True),
                )
            )
            timestamps: list[datetime] = list(result.scalars().all())
        return study_days(timestamps, tz)

    async def calculate_for_user(self, user_id: int) -> StreakResult:
        """Current and longest streak over the user's full history."""
        tz = await self.get_user_timezone(user_id)
        days = await self.fetch_study_days(user_id, tz)
        return calculate_streaks(days, today_in(tz, self.clock))

    async def get_streak_data(self, user_id: int) -> StreakData:
        """
        Get detailed study streak information.

        Calculates current streak, longest streak, milestones, and activity
        counts from the user's completed sessions.

        Returns:
            StreakData with comprehensive streak information.
        """
        tz = await self.get_user_timezone(user_id)
        days = await self.fetch_study_days(user_id, tz)
        today = today_in(tz, self.clock)
        milestones = settings.STREAK_MILESTONES

        if not days:
            return StreakData(
                current_streak=0,
                longest_streak=0,
                next_milestone=next_milestone(0, milestones),
            )

        result = calculate_streaks(days, today)
        return StreakData(
            current_streak=result.current,
            longest_streak=result.longest,
            streak_start=result.streak_start,
            last_study_day=result.last_study_day,
            is_active_today=result.last_study_day == today,
            days_this_week=count_days_in_period(days, today, 7),
            days_this_month=count_days_in_period(days, today, 30),
            milestones_reached=milestones_reached(result.longest, milestones),
            next_milestone=next_milestone(result.current, milestones),
        )
