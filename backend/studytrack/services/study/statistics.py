"""
Study Statistics Service

Read-only rollups over completed study sessions. Nothing here writes; the
progress synchronizer and reconciliation consume these numbers.

Rollups:
- User overview: totals and averages, optionally bounded by a date range
- Daily stats: per-calendar-day buckets in STATS_TIMEZONE
- Type breakdown: per session type
- Top topics: per topic, sorted by time
- Today's summary: sessions started today, any status
- Topic average completion time: mean time_spent of completed progress

SQL aggregates are used where the grouping key is a column. Calendar-day
bucketing happens in pandas after converting start times to the reference
timezone, since date truncation in a named zone isn't portable across
database backends.

Usage:
    from studytrack.services.study.statistics import StatisticsService

    stats = StatisticsService(async_session_maker, clock)
    overview = await stats.get_user_stats(user_id)
    daily = await stats.get_daily_stats(user_id, days=7)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import pandas as pd
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studytrack.config import settings
from studytrack.db.models import StudySession, Topic, UserProgress
from studytrack.domain.temporal import (
    Clock,
    SystemClock,
    ensure_utc,
    resolve_timezone,
    start_of_day,
    today_in,
)
from studytrack.enums.study import ProgressStatus, SessionType
from studytrack.middleware.error_handling import NotFoundError, ValidationError
from studytrack.models.study import (
    DailyStats,
    DateRange,
    TodaySummary,
    TopTopicItem,
    TypeBreakdownItem,
    UserStatsResponse,
)

logger = logging.getLogger(__name__)


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return round(float(value), digits) if value is not None else None


def _bounded(conditions: list, date_range: Optional[DateRange]) -> list:
    """Add start_time bounds from `date_range` to a list of WHERE conditions."""
    if date_range is None:
        return conditions
    if date_range.start_date is not None:
        conditions.append(StudySession.start_time >= ensure_utc(date_range.start_date))
    if date_range.end_date is not None:
        conditions.append(StudySession.start_time <= ensure_utc(date_range.end_date))
    return conditions


class StatisticsService:
    """
    Aggregates completed study sessions into dashboard statistics.

    Only sessions with is_completed = True count, except for today's
    summary which reports every session started today.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
    ):
        self.session_maker = session_maker
        self.clock = clock or SystemClock()

    def _completed(self, user_id: int) -> list:
        return [
            StudySession.user_id == user_id,
            StudySession.is_completed.is_(True),
        ]

    # =========================================================================
    # Overview
    # =========================================================================

    async def get_user_stats(
        self, user_id: int, date_range: Optional[DateRange] = None
    ) -> UserStatsResponse:
        """
        Totals and averages over the user's completed sessions.

        Averages skip sessions where the value is missing; an empty result
        yields all zeros.
        """
        conditions = _bounded(self._completed(user_id), date_range)
        query = select(
            func.count(StudySession.id).label("total_sessions"),
            func.coalesce(func.sum(StudySession.actual_duration), 0).label("total_time"),
            func.avg(StudySession.actual_duration).label("average_session_time"),
            func.avg(StudySession.productivity_rating).label("average_productivity"),
            func.avg(StudySession.average_focus_level).label("average_focus_score"),
            func.coalesce(func.sum(StudySession.break_count), 0).label("total_breaks"),
        ).where(*conditions)

        async with self.session_maker() as db:
            row = (await db.execute(query)).one()

        return UserStatsResponse(
            total_sessions=row.total_sessions or 0,
            total_time=int(row.total_time or 0),
            average_session_time=_round(row.average_session_time) or 0.0,
            average_productivity=_round(row.average_productivity) or 0.0,
            average_focus_score=_round(row.average_focus_score) or 0.0,
            total_breaks=int(row.total_breaks or 0),
        )

    async def get_total_study_hours(self, user_id: int) -> float:
        """Sum of actual_duration over completed sessions, in hours."""
        async with self.session_maker() as db:
            minutes = await db.scalar(
                select(func.coalesce(func.sum(StudySession.actual_duration), 0)).where(
                    *self._completed(user_id)
                )
            )
        return (minutes or 0) / 60

    async def get_last_study_date(self, user_id: int) -> Optional[datetime]:
        """End time of the user's most recent completed session."""
        async with self.session_maker() as db:
            value = await db.scalar(
                select(func.max(StudySession.end_time)).where(*self._completed(user_id))
            )
        return ensure_utc(value) if value is not None else None

    # =========================================================================
    # Daily buckets
    # =========================================================================

    async def get_daily_stats(
        self, user_id: int, days: Optional[int] = None
    ) -> list[DailyStats]:
        """
        Per-day rollup over the trailing `days` calendar days, today included.

        Days are calendar dates in STATS_TIMEZONE. Only days with at least
        one completed session appear, ascending.

        Raises:
            ValidationError: days outside 1..DAILY_STATS_MAX_DAYS.
        """
        days = settings.DAILY_STATS_DEFAULT_DAYS if days is None else days
        if not 1 <= days <= settings.DAILY_STATS_MAX_DAYS:
            raise ValidationError(
                f"days must be between 1 and {settings.DAILY_STATS_MAX_DAYS}",
                details={"field": "days", "value": days},
            )

        tz = resolve_timezone(settings.STATS_TIMEZONE)
        first_day = today_in(tz, self.clock) - timedelta(days=days - 1)
        window_start = start_of_day(first_day, tz)

        async with self.session_maker() as db:
            result = await db.execute(
                select(
                    StudySession.start_time,
                    StudySession.actual_duration,
                    StudySession.productivity_rating,
                ).where(
                    *self._completed(user_id),
                    StudySession.start_time >= window_start,
                )
            )
            rows = result.all()

        if not rows:
            return []

        df = pd.DataFrame(
            [
                {
                    "start_time": ensure_utc(r.start_time),
                    "actual_duration": r.actual_duration or 0,
                    "productivity": r.productivity_rating,
                }
                for r in rows
            ]
        )
        df["day"] = pd.to_datetime(df["start_time"], utc=True).dt.tz_convert(tz).dt.date
        df["productivity"] = pd.to_numeric(df["productivity"], errors="coerce")

        grouped = (
            df.groupby("day")
            .agg(
                session_count=("start_time", "size"),
                total_time=("actual_duration", "sum"),
                average_productivity=("productivity", "mean"),
            )
            .sort_index()
        )

        return [
            DailyStats(
                date=day,
                session_count=int(row.session_count),
                total_time=int(row.total_time),
                average_productivity=(
                    None
                    if pd.isna(row.average_productivity)
                    else round(float(row.average_productivity), 2)
                ),
            )
            for day, row in grouped.iterrows()
        ]

    # =========================================================================
    # Breakdowns
    # =========================================================================

    async def get_type_breakdown(
        self, user_id: int, date_range: Optional[DateRange] = None
    ) -> list[TypeBreakdownItem]:
        """Completed-session rollup per session type, most time first."""
        conditions = _bounded(self._completed(user_id), date_range)
        total_time = func.coalesce(func.sum(StudySession.actual_duration), 0)
        query = (
            select(
                StudySession.session_type,
                func.count(StudySession.id).label("count"),
                total_time.label("total_time"),
                func.avg(StudySession.productivity_rating).label("average_productivity"),
            )
            .where(*conditions)
            .group_by(StudySession.session_type)
            .order_by(total_time.desc())
        )
        async with self.session_maker() as db:
            rows = (await db.execute(query)).all()

        return [
            TypeBreakdownItem(
                session_type=SessionType(row.session_type),
                count=row.count,
                total_time=int(row.total_time),
                average_productivity=_round(row.average_productivity),
            )
            for row in rows
        ]

    async def get_top_topics(
        self,
        user_id: int,
        date_range: Optional[DateRange] = None,
        limit: Optional[int] = None,
    ) -> list[TopTopicItem]:
        """
        Most studied topics by total completed time.

        Sessions whose topic no longer exists are left out.
        """
        limit = limit or settings.TOP_TOPICS_LIMIT
        conditions = _bounded(self._completed(user_id), date_range)
        total_time = func.coalesce(func.sum(StudySession.actual_duration), 0)
        query = (
            select(
                StudySession.topic_id,
                Topic.title,
                Topic.category,
                func.count(StudySession.id).label("sessions"),
                total_time.label("total_time"),
                func.avg(StudySession.productivity_rating).label("average_productivity"),
            )
            .join(Topic, Topic.id == StudySession.topic_id)
            .where(*conditions)
            .group_by(StudySession.topic_id, Topic.title, Topic.category)
            .order_by(total_time.desc(), StudySession.topic_id)
            .limit(limit)
        )
        async with self.session_maker() as db:
            rows = (await db.execute(query)).all()

        return [
            TopTopicItem(
                topic_id=row.topic_id,
                topic_title=row.title,
                topic_category=row.category,
                sessions=row.sessions,
                total_time=int(row.total_time),
                average_productivity=_round(row.average_productivity),
            )
            for row in rows
        ]

    async def get_today_summary(self, user_id: int) -> TodaySummary:
        """Sessions started today in STATS_TIMEZONE, regardless of status."""
        tz = resolve_timezone(settings.STATS_TIMEZONE)
        today = today_in(tz, self.clock)
        day_start = start_of_day(today, tz)
        day_end = start_of_day(today + timedelta(days=1), tz)

        query = select(
            func.count(StudySession.id).label("total_sessions"),
            func.coalesce(
                func.sum(case((StudySession.is_completed.is_(True), 1), else_=0)), 0
            ).label("completed_sessions"),
            func.coalesce(func.sum(StudySession.actual_duration), 0).label("total_time"),
            func.avg(StudySession.productivity_rating).label("average_productivity"),
        ).where(
            StudySession.user_id == user_id,
            StudySession.start_time >= day_start,
            StudySession.start_time < day_end,
        )
        async with self.session_maker() as db:
            row = (await db.execute(query)).one()

        return TodaySummary(
            date=today,
            total_sessions=row.total_sessions or 0,
            completed_sessions=int(row.completed_sessions or 0),
            total_time=int(row.total_time or 0),
            average_productivity=_round(row.average_productivity) or 0.0,
        )

    async def get_topic_average_completion_time(self, topic_id: int) -> int:
        """
        Mean time_spent (minutes) of users who completed the topic.

        Raises:
            NotFoundError: Unknown topic.
        """
        async with self.session_maker() as db:
            if await db.get(Topic, topic_id) is None:
                raise NotFoundError(f"Topic {topic_id} not found")
            average = await db.scalar(
                select(func.avg(UserProgress.time_spent)).where(
                    UserProgress.topic_id == topic_id,
                    UserProgress.status == ProgressStatus.COMPLETED.value,
                )
            )
        return int(float(average) + 0.5) if average is not None else 0
