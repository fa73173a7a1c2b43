"""
Analytics API Router

Endpoints for study analytics and materialized user statistics.

Endpoints:
- GET /api/analytics/overview - Rollup over a trailing time range
- GET /api/analytics/daily - Daily study buckets
- GET /api/analytics/streak - Study streak information
- GET /api/analytics/type-breakdown - Completed time per session type
- GET /api/analytics/top-topics - Most studied topics
- GET /api/analytics/users/{user_id}/statistics - Stored user statistics
- POST /api/analytics/users/{user_id}/reconcile - Recompute stored statistics
- GET /api/analytics/topics/{topic_id}/completion-time - Mean completion time
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from studytrack.config import settings
from studytrack.dependencies import (
    get_clock,
    get_progress_synchronizer,
    get_statistics_service,
    get_streak_service,
)
from studytrack.domain.sessions import coerce
from studytrack.domain.temporal import Clock, period_start
from studytrack.enums.study import TimePeriod
from studytrack.middleware.error_handling import handle_endpoint_errors
from studytrack.models.study import (
    AnalyticsOverview,
    DailyStats,
    DateRange,
    StreakData,
    TopicCompletionTime,
    TopTopicItem,
    TypeBreakdownItem,
    UserStatisticsResponse,
)
from studytrack.services.study import (
    ProgressSynchronizer,
    StatisticsService,
    StreakTrackingService,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _trailing_range(time_range: TimePeriod, clock: Clock) -> Optional[DateRange]:
    start = period_start(time_range, clock.now())
    return coerce(DateRange, {"start_date": start}) if start else None


# ===========================================
# Rollup Endpoints
# ===========================================


@router.get("/overview", response_model=AnalyticsOverview)
@handle_endpoint_errors("Get analytics overview")
async def get_overview(
    user_id: int = Query(...),
    time_range: TimePeriod = Query(TimePeriod.MONTH),
    statistics: StatisticsService = Depends(get_statistics_service),
    streaks: StreakTrackingService = Depends(get_streak_service),
    sync: ProgressSynchronizer = Depends(get_progress_synchronizer),
    clock: Clock = Depends(get_clock),
) -> AnalyticsOverview:
    """
    Study overview for a trailing time range.

    Returns:
    - Session totals and averages within the range
    - Topics completed so far
    - Current streak
    """
    date_range = _trailing_range(time_range, clock)
    stored = await sync.get_user_statistics(user_id)
    return AnalyticsOverview(
        time_range=time_range,
        overview=await statistics.get_user_stats(user_id, date_range),
        completed_topics=stored.completed_topics,
        streaks=await streaks.get_streak_data(user_id),
    )


@router.get("/daily", response_model=list[DailyStats])
@handle_endpoint_errors("Get daily stats")
async def get_daily_stats(
    user_id: int = Query(...),
    days: int = Query(
        settings.DAILY_STATS_DEFAULT_DAYS,
        ge=1,
        le=settings.DAILY_STATS_MAX_DAYS,
        description="Number of trailing days, today included",
    ),
    statistics: StatisticsService = Depends(get_statistics_service),
) -> list[DailyStats]:
    """Per-day session counts and time, ascending, days with activity only."""
    return await statistics.get_daily_stats(user_id, days)


@router.get("/streak", response_model=StreakData)
@handle_endpoint_errors("Get streak data")
async def get_streak(
    user_id: int = Query(...),
    streaks: StreakTrackingService = Depends(get_streak_service),
) -> StreakData:
    """Current/longest streak, recent activity and milestones."""
    return await streaks.get_streak_data(user_id)


@router.get("/type-breakdown", response_model=list[TypeBreakdownItem])
@handle_endpoint_errors("Get type breakdown")
async def get_type_breakdown(
    user_id: int = Query(...),
    time_range: TimePeriod = Query(TimePeriod.ALL),
    statistics: StatisticsService = Depends(get_statistics_service),
    clock: Clock = Depends(get_clock),
) -> list[TypeBreakdownItem]:
    return await statistics.get_type_breakdown(
        user_id, _trailing_range(time_range, clock)
    )


@router.get("/top-topics", response_model=list[TopTopicItem])
@handle_endpoint_errors("Get top topics")
async def get_top_topics(
    user_id: int = Query(...),
    time_range: TimePeriod = Query(TimePeriod.ALL),
    limit: int = Query(settings.TOP_TOPICS_LIMIT, ge=1, le=50),
    statistics: StatisticsService = Depends(get_statistics_service),
    clock: Clock = Depends(get_clock),
) -> list[TopTopicItem]:
    return await statistics.get_top_topics(
        user_id, _trailing_range(time_range, clock), limit=limit
    )


# ===========================================
# Stored Statistics Endpoints
# ===========================================


@router.get("/users/{user_id}/statistics", response_model=UserStatisticsResponse)
@handle_endpoint_errors("Get user statistics")
async def get_user_statistics(
    user_id: int,
    sync: ProgressSynchronizer = Depends(get_progress_synchronizer),
) -> UserStatisticsResponse:
    """Statistics stored on the user, as maintained by completions."""
    return await sync.get_user_statistics(user_id)


@router.post("/users/{user_id}/reconcile", response_model=UserStatisticsResponse)
@handle_endpoint_errors("Reconcile user statistics")
async def reconcile_user_statistics(
    user_id: int,
    sync: ProgressSynchronizer = Depends(get_progress_synchronizer),
) -> UserStatisticsResponse:
    """
    Recompute the user's stored statistics from session history.

    Use after a suspected lost update; the result replaces the stored values.
    """
    return await sync.reconcile_user_statistics(user_id)


@router.get(
    "/topics/{topic_id}/completion-time", response_model=TopicCompletionTime
)
@handle_endpoint_errors("Get topic completion time")
async def get_topic_completion_time(
    topic_id: int,
    statistics: StatisticsService = Depends(get_statistics_service),
) -> TopicCompletionTime:
    average = await statistics.get_topic_average_completion_time(topic_id)
    return TopicCompletionTime(topic_id=topic_id, average_completion_time=average)
