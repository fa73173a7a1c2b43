"""
Study Tracking API Models (Pydantic)

Request/response schemas for study sessions, statistics rollups and
streaks.

ARCHITECTURE NOTE:
    Lifecycle inputs (SessionCompletionData, BreakData, SessionDetailsUpdate)
    and the session value objects live in studytrack/domain/sessions.py and
    are reused here as request bodies. The SQLAlchemy tables are in
    studytrack/db/models.py.

    Data flows: API Request → Pydantic → Service → Domain → SQLAlchemy
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import AwareDatetime, Field, model_validator

from studytrack.config import settings
from studytrack.domain.sessions import (
    BreakRecord,
    Environment,
    FocusMetrics,
    Productivity,
)
from studytrack.enums.study import SessionStatus, SessionType, TimePeriod
from studytrack.models.base import PaginatedResponse, StrictRequest, StrictResponse


# ===========================================
# Session Requests
# ===========================================


class SessionCreateRequest(StrictRequest):
    """
    Request to plan a new study session.

    Note: Uses StrictRequest - unknown fields will be rejected with 422.
    """

    user_id: int
    topic_id: int
    planned_duration: int = Field(
        ...,
        ge=settings.MIN_PLANNED_DURATION_MINUTES,
        le=settings.MAX_PLANNED_DURATION_MINUTES,
        description="Planned minutes",
    )
    session_type: SessionType = SessionType.FOCUSED
    notes: Optional[str] = Field(None, max_length=settings.MAX_SESSION_NOTES_LENGTH)
    environment: Optional[Environment] = None
    tags: list[str] = Field(default_factory=list)


class SessionResumeRequest(StrictRequest):
    """Resume a paused session, reporting how long it was paused."""

    pause_duration: int = Field(0, ge=0, description="Paused minutes")


class SessionCancelRequest(StrictRequest):
    """Cancel a session with an optional reason."""

    reason: Optional[str] = None


# ===========================================
# Session Responses
# ===========================================


class SessionResponse(StrictResponse):
    """
    Study session as returned by the API.

    Built from a StudySessionSnapshot; includes the derived efficiency and
    focus score.
    """

    id: int
    user_id: int
    topic_id: int
    session_type: SessionType
    planned_duration: int
    actual_duration: Optional[int] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus
    is_completed: bool
    paused_time: int
    notes: Optional[str] = None
    productivity: Productivity
    environment: Optional[Environment] = None
    breaks: list[BreakRecord] = Field(default_factory=list)
    focus_metrics: FocusMetrics
    tags: list[str] = Field(default_factory=list)
    version: int
    efficiency: int = 0
    focus_score: float = 0


class SessionListResponse(PaginatedResponse):
    """Paginated list of sessions, newest first."""

    items: list[SessionResponse]


class SessionCompletionResponse(StrictResponse):
    """Completed session plus any non-fatal synchronization warnings."""

    session: SessionResponse
    warnings: list[str] = Field(default_factory=list)
    topic_completed: bool = False
    achievements_unlocked: list[str] = Field(default_factory=list)


# ===========================================
# Statistics
# ===========================================


class DateRange(StrictRequest):
    """Inclusive bounds on session start_time. Either side may be open."""

    start_date: Optional[AwareDatetime] = None
    end_date: Optional[AwareDatetime] = None

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class UserStatsResponse(StrictResponse):
    """
    Rollup over a user's completed sessions.

    Times are in minutes. Averages ignore sessions without the rated value
    and are 0 when nothing qualifies.
    """

    total_sessions: int = 0
    total_time: int = 0
    average_session_time: float = 0.0
    average_productivity: float = 0.0
    average_focus_score: float = 0.0
    total_breaks: int = 0


class DailyStats(StrictResponse):
    """Completed sessions on one calendar day."""

    date: date
    session_count: int
    total_time: int
    average_productivity: Optional[float] = None


class TypeBreakdownItem(StrictResponse):
    """Completed sessions of one session type."""

    session_type: SessionType
    count: int
    total_time: int
    average_productivity: Optional[float] = None


class TopTopicItem(StrictResponse):
    """Per-topic rollup for the most studied topics."""

    topic_id: int
    topic_title: str
    topic_category: str
    sessions: int
    total_time: int
    average_productivity: Optional[float] = None


class TodaySummary(StrictResponse):
    """Sessions started today (any status)."""

    date: date
    total_sessions: int
    completed_sessions: int
    total_time: int
    average_productivity: float


class StreakData(StrictResponse):
    """
    Study streak information.

    Tracks consecutive days with at least one completed session, computed
    in the user's timezone. Includes milestone tracking and weekly/monthly
    activity counts.
    """

    current_streak: int  # Days
    longest_streak: int
    streak_start: Optional[date] = None
    last_study_day: Optional[date] = None
    is_active_today: bool = False
    days_this_week: int = 0
    days_this_month: int = 0
    # Milestones
    milestones_reached: list[int] = Field(default_factory=list)  # e.g., [7, 30, 100]
    next_milestone: Optional[int] = None


class SessionStatsResponse(StrictResponse):
    """Combined statistics payload for the sessions dashboard."""

    overview: UserStatsResponse
    streaks: StreakData
    daily_stats: list[DailyStats]
    type_breakdown: list[TypeBreakdownItem]
    top_topics: list[TopTopicItem]


class UserStatisticsResponse(StrictResponse):
    """Materialized statistics stored on the user."""

    user_id: int
    total_study_hours: float
    current_streak: int
    longest_streak: int
    last_study_date: Optional[datetime] = None
    total_sessions: int
    completed_topics: int
    average_session_length: float


class AnalyticsOverview(StrictResponse):
    """Rollup over a trailing time range plus the current streak."""

    time_range: TimePeriod
    overview: UserStatsResponse
    completed_topics: int
    streaks: StreakData


class TopicCompletionTime(StrictResponse):
    """Mean minutes spent by users who completed a topic."""

    topic_id: int
    average_completion_time: int
