"""
SQLAlchemy Database Models for Study Tracking

Tables:
- users: Learner accounts with materialized study statistics
- topics: Catalog entries with milestones, resources and completion stats
- user_progress: One row per (user, topic) pair
- study_sessions: Timed study intervals driven through the lifecycle

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    Session lifecycle rules live in studytrack/domain/sessions.py and operate
    on immutable snapshots; studytrack/services/study/session_store.py maps
    between the two.

    Data flows: Service Layer → Domain snapshot → SQLAlchemy → Database
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from studytrack.db.base import Base
from studytrack.enums.study import (
    ProgressStatus,
    SessionStatus,
    SessionType,
    TopicDifficulty,
)


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ===========================================
# Users
# ===========================================


class User(Base):
    """
    Learner account with cumulative study statistics.

    The statistics columns are a materialized view over study_sessions.
    They are maintained incrementally by the progress synchronizer with
    atomic increments and can be rebuilt at any time by reconciliation.

    Attributes:
        id: Primary key.
        username: Unique display name.
        email: Unique contact address.
        timezone: IANA timezone name used for streak day boundaries.
        total_study_hours: Sum of actual_duration/60 over completed sessions.
        current_streak: Trailing run of consecutive study days.
        longest_streak: Longest run of consecutive study days ever.
        last_study_date: End time of the most recently completed session.
        total_sessions: Number of completed sessions.
        completed_topics: Number of topics this user completed.
        average_session_length: total_study_hours*60/total_sessions (minutes).
        achievements: JSON list of {name, description, icon, unlocked_at}.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(30), unique=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")

    # Statistics
    total_study_hours: Mapped[float] = mapped_column(Float, default=0.0)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_study_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    completed_topics: Mapped[int] = mapped_column(Integer, default=0)
    average_session_length: Mapped[float] = mapped_column(Float, default=0.0)

    achievements: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


# ===========================================
# Topics & Progress
# ===========================================


class Topic(Base):
    """
    Catalog topic.

    Attributes:
        id: Primary key.
        title: Topic title (max 100 chars).
        description: Short description.
        category: Catalog category, e.g. "System Design".
        difficulty: Beginner / Intermediate / Advanced.
        estimated_hours: Expected effort to complete.
        milestones: JSON list of {id, title, description, order}.
        resources: JSON list of {id, title, type, url, duration, is_required}.
        tags: Free-form tags.
        is_active: Inactive topics can't receive new sessions.
        average_rating: Mean of completion ratings (0-5).
        total_ratings: Number of ratings folded into average_rating.
        completion_count: Number of users who completed the topic.
    """

    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(String(500))
    category: Mapped[str] = mapped_column(String(100))
    difficulty: Mapped[str] = mapped_column(
        String(20), default=TopicDifficulty.BEGINNER.value
    )
    estimated_hours: Mapped[float] = mapped_column(Float, default=1.0)

    milestones: Mapped[list] = mapped_column(JSON, default=list)
    resources: Mapped[list] = mapped_column(JSON, default=list)
    tags: Mapped[list] = mapped_column(JSON, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    average_rating: Mapped[float] = mapped_column(Float, default=0.0)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0)
    completion_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )


class UserProgress(Base):
    """
    Progress of one user through one topic.

    Created lazily the first time a user completes a session on the topic.
    Never deleted.

    Attributes:
        status: not-started / in-progress / completed / on-hold.
        progress: Percentage 0-100.
        time_spent: Minutes studied on this topic.
        milestone_progress: JSON list of {milestone_id, completed, completed_at}.
        resource_progress: JSON list of
            {resource_id, completed, time_spent, completed_at}.
    """

    __tablename__ = "user_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", name="uq_user_progress_user_topic"),
        Index("ix_user_progress_user_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    topic_id: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(
        String(20), default=ProgressStatus.NOT_STARTED.value
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    rating: Mapped[Optional[int]] = mapped_column(Integer)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_studied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    milestone_progress: Mapped[list] = mapped_column(JSON, default=list)
    resource_progress: Mapped[list] = mapped_column(JSON, default=list)
    is_bookmarked: Mapped[bool] = mapped_column(Boolean, default=False)


# ===========================================
# Study Sessions
# ===========================================


class StudySession(Base):
    """
    One timed study interval.

    Productivity and focus metrics are stored as flat columns so the
    statistics aggregator can average them in SQL. break_count mirrors
    len(breaks) for the same reason.

    Attributes:
        id: Primary key.
        user_id: Owning user.
        topic_id: Studied topic. Not a foreign key: topics may disappear and
            completed sessions must survive that.
        session_type: pomodoro / focused / break / review.
        planned_duration: Planned minutes (1-480).
        actual_duration: Minutes actually studied, set once at completion.
        start_time: Creation time, reset when the session is started.
        end_time: Set on completion or cancellation.
        status: Lifecycle state.
        is_completed: True once completed.
        paused_time: Total paused minutes reported on resume.
        version: Incremented on every transition; used for optimistic
            check-then-write.
    """

    __tablename__ = "study_sessions"
    __table_args__ = (
        Index("ix_study_sessions_user_start", "user_id", "start_time"),
        Index("ix_study_sessions_user_status", "user_id", "status"),
        Index("ix_study_sessions_user_completed", "user_id", "is_completed"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    topic_id: Mapped[int] = mapped_column(Integer, index=True)

    session_type: Mapped[str] = mapped_column(
        String(20), default=SessionType.FOCUSED.value
    )
    planned_duration: Mapped[int] = mapped_column(Integer)
    actual_duration: Mapped[Optional[int]] = mapped_column(Integer)

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.PLANNED.value
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    paused_time: Mapped[int] = mapped_column(Integer, default=0)

    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Productivity
    productivity_rating: Mapped[Optional[int]] = mapped_column(Integer)
    productivity_comment: Mapped[Optional[str]] = mapped_column(Text)

    # Focus metrics
    interruption_count: Mapped[int] = mapped_column(Integer, default=0)
    deep_focus_time: Mapped[int] = mapped_column(Integer, default=0)
    average_focus_level: Mapped[Optional[float]] = mapped_column(Float)

    environment: Mapped[Optional[dict]] = mapped_column(JSON)
    breaks: Mapped[list] = mapped_column(JSON, default=list)
    break_count: Mapped[int] = mapped_column(Integer, default=0)
    tags: Mapped[list] = mapped_column(JSON, default=list)

    version: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )
