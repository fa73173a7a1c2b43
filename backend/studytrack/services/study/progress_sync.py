"""
Progress Synchronizer

Propagates the outcome of a completed study session into the user's
materialized statistics, their per-topic progress and the topic's
completion stats.

Runs once per completion, after the session's own write has committed.
Each step commits separately; a failing step is reported as a
ConsistencyWarning and never rolls back the completed session. Counters
are updated with single-statement increments so that concurrent
completions don't lose each other's deltas. Anything that still drifts is
restored by reconcile_user_statistics().

Usage:
    from studytrack.services.study.progress_sync import ProgressSynchronizer

    sync = ProgressSynchronizer(async_session_maker, streaks, statistics, clock)
    result = await sync.on_session_completed(session, completion_data)
    for warning in result.warnings:
        ...
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studytrack.config import settings
from studytrack.db.models import Topic, User, UserProgress
from studytrack.domain.progress import (
    COMPLETE,
    calculate_progress,
    merge_milestone_progress,
    topic_milestone_ids,
)
from studytrack.domain.sessions import SessionCompletionData, StudySessionSnapshot
from studytrack.domain.streaks import milestones_reached
from studytrack.domain.temporal import Clock, SystemClock, ensure_utc
from studytrack.enums.study import ProgressStatus
from studytrack.middleware.error_handling import ConsistencyWarning, NotFoundError
from studytrack.models.study import UserStatisticsResponse
from studytrack.services.study.statistics import StatisticsService
from studytrack.services.study.streak_tracking import StreakTrackingService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SyncResult:
    """What a completion changed downstream, plus anything that failed."""

    session_id: Optional[int]
    user_updated: bool = False
    progress_updated: bool = False
    topic_completed: bool = False
    achievements_unlocked: list[str] = field(default_factory=list)
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    def warn(self, message: str, exc_info: bool = False, **details: Any) -> None:
        warning = ConsistencyWarning(
            message, details={"session_id": self.session_id, **details}
        )
        logger.warning(
            f"Consistency warning for session {self.session_id}: {message}",
            exc_info=exc_info,
        )
        self.warnings.append(warning)


def streak_achievement(days: int) -> dict[str, Any]:
    """Achievement record for reaching a streak of `days` days."""
    return {
        "name": f"{days}-day streak",
        "description": f"Studied {days} days in a row",
        "icon": "flame",
    }


class ProgressSynchronizer:
    """
    Applies completed sessions to user, progress and topic aggregates.

    Also owns reconciliation, which recomputes the user's materialized
    statistics from session history and overwrites them.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        streaks: StreakTrackingService,
        statistics: StatisticsService,
        clock: Optional[Clock] = None,
    ):
        self.session_maker = session_maker
        self.streaks = streaks
        self.statistics = statistics
        self.clock = clock or SystemClock()

    # =========================================================================
    # Completion
    # =========================================================================

    async def on_session_completed(
        self,
        session: StudySessionSnapshot,
        data: Optional[SessionCompletionData] = None,
    ) -> SyncResult:
        """
        Apply a completed session downstream.

        Args:
            session: The completed snapshot as persisted.
            data: Completion input carrying milestones, progress and rating.

        Returns:
            SyncResult with flags for what changed and any warnings.
        """
        data = data or SessionCompletionData()
        result = SyncResult(session_id=session.id)

        # A failed increment doesn't mean the user is gone
        user_exists = await self._run_step(
            "user statistics", result, True, self._update_user_counters, session, result
        )
        if user_exists:
            await self._run_step(
                "streaks", result, None, self._update_streaks, session.user_id, result
            )

        await self._run_step(
            "topic progress",
            result,
            None,
            self._update_topic_progress,
            session,
            data,
            result,
            user_exists,
        )

        logger.info(
            f"Synced session {session.id}: user_updated={result.user_updated} "
            f"progress_updated={result.progress_updated} "
            f"topic_completed={result.topic_completed} "
            f"warnings={len(result.warnings)}"
        )
        return result

    async def _run_step(
        self,
        step: str,
        result: SyncResult,
        default: T,
        func: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> T:
        """
        Run one sync step, turning any failure into a ConsistencyWarning.

        The step's own session is rolled back when its context exits, and
        the remaining steps still run.
        """
        try:
            return await func(*args)
        except Exception as e:
            result.warn(
                f"Failed to sync {step}: {e}",
                exc_info=True,
                step=step,
                error=type(e).__name__,
            )
            return default

    async def _update_user_counters(
        self, session: StudySessionSnapshot, result: SyncResult
    ) -> bool:
        """Increment user totals in one statement. False when the user is gone."""
        minutes = session.actual_duration or 0
        hours = minutes / 60
        stmt = (
            update(User)
            .where(User.id == session.user_id)
            .values(
                total_sessions=User.total_sessions + 1,
                total_study_hours=User.total_study_hours + hours,
                average_session_length=(User.total_study_hours + hours)
                * 60
                / (User.total_sessions + 1),
                last_study_date=ensure_utc(session.end_time or self.clock.now()),
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as db:
            updated = await db.execute(stmt)
            if updated.rowcount != 1:
                await db.rollback()
                result.warn(
                    f"User {session.user_id} not found; statistics not updated",
                    user_id=session.user_id,
                )
                return False
            await db.commit()

        result.user_updated = True
        return True

    async def _update_streaks(self, user_id: int, result: SyncResult) -> None:
        """Recompute streaks from full history and unlock streak achievements."""
        streak = await self.streaks.calculate_for_user(user_id)

        async with self.session_maker() as db:
            user = await db.get(User, user_id)
            if user is None:
                result.warn(f"User {user_id} disappeared during sync", user_id=user_id)
                return

            user.current_streak = streak.current
            user.longest_streak = streak.longest

            existing = list(user.achievements or [])
            names = {a.get("name") for a in existing}
            now = self.clock.now().isoformat()
            for days in milestones_reached(streak.longest, settings.STREAK_MILESTONES):
                achievement = streak_achievement(days)
                if achievement["name"] not in names:
                    existing.append({**achievement, "unlocked_at": now})
                    names.add(achievement["name"])
                    result.achievements_unlocked.append(achievement["name"])
            if result.achievements_unlocked:
                user.achievements = existing

            await db.commit()

        if result.achievements_unlocked:
            logger.info(
                f"User {user_id} unlocked achievements: {result.achievements_unlocked}"
            )

    async def _get_or_create_progress(
        self, db: AsyncSession, user_id: int, topic_id: int, now: datetime
    ) -> UserProgress:
        query = select(UserProgress).where(
            UserProgress.user_id == user_id, UserProgress.topic_id == topic_id
        )
        progress = (await db.execute(query)).scalar_one_or_none()
        if progress is not None:
            return progress

        progress = UserProgress(
            user_id=user_id,
            topic_id=topic_id,
            status=ProgressStatus.IN_PROGRESS.value,
            progress=0,
            time_spent=0,
            started_at=now,
            milestone_progress=[],
            resource_progress=[],
        )
        db.add(progress)
        try:
            await db.flush()
        except IntegrityError:
            # Another completion created it first
            await db.rollback()
            progress = (await db.execute(query)).scalar_one()
        return progress

    async def _update_topic_progress(
        self,
        session: StudySessionSnapshot,
        data: SessionCompletionData,
        result: SyncResult,
        user_exists: bool,
    ) -> None:
        minutes = session.actual_duration or 0
        now = ensure_utc(session.end_time or self.clock.now())

        async with self.session_maker() as db:
            topic = await db.get(Topic, session.topic_id)
            if topic is None:
                result.warn(
                    f"Topic {session.topic_id} not found; progress not updated",
                    topic_id=session.topic_id,
                )
                return
            if not user_exists:
                return
            milestone_ids = topic_milestone_ids(topic.milestones or [])

            progress = await self._get_or_create_progress(
                db, session.user_id, session.topic_id, now
            )
            if progress.status == ProgressStatus.NOT_STARTED.value:
                progress.status = ProgressStatus.IN_PROGRESS.value
            if progress.started_at is None:
                progress.started_at = now

            milestone_progress, newly_completed = merge_milestone_progress(
                progress.milestone_progress or [],
                milestone_ids,
                data.completed_milestones,
                now,
            )
            progress.milestone_progress = milestone_progress
            progress.progress = calculate_progress(
                milestone_ids, milestone_progress, progress.progress or 0, data.progress
            )
            progress.time_spent = UserProgress.time_spent + minutes
            progress.last_studied_at = now
            if data.topic_rating is not None:
                progress.rating = data.topic_rating

            reached_complete = progress.progress >= COMPLETE
            progress_id = progress.id
            await db.commit()

            result.progress_updated = True
            if newly_completed:
                logger.info(
                    f"User {session.user_id} completed milestones {newly_completed} "
                    f"on topic {session.topic_id}"
                )

            if reached_complete:
                await self._complete_topic(
                    db, progress_id, session, data.topic_rating, now, result
                )

    async def _complete_topic(
        self,
        db: AsyncSession,
        progress_id: int,
        session: StudySessionSnapshot,
        rating: Optional[int],
        now: datetime,
        result: SyncResult,
    ) -> None:
        """
        Mark progress completed and bump topic/user completion counters.

        The status flip is a conditional UPDATE, so when two completions race
        to 100% only one of them counts the topic.
        """
        claimed = await db.execute(
            update(UserProgress)
            .where(
                UserProgress.id == progress_id,
                UserProgress.status != ProgressStatus.COMPLETED.value,
            )
            .values(status=ProgressStatus.COMPLETED.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await db.rollback()
            return

        topic_values: dict[str, Any] = {"completion_count": Topic.completion_count + 1}
        if rating is not None:
            topic_values["average_rating"] = (
                Topic.average_rating * Topic.total_ratings + rating
            ) / (Topic.total_ratings + 1)
            topic_values["total_ratings"] = Topic.total_ratings + 1

        await db.execute(
            update(Topic)
            .where(Topic.id == session.topic_id)
            .values(**topic_values)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            update(User)
            .where(User.id == session.user_id)
            .values(completed_topics=User.completed_topics + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        result.topic_completed = True
        logger.info(f"User {session.user_id} completed topic {session.topic_id}")

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile_user_statistics(self, user_id: int) -> UserStatisticsResponse:
        """
        Recompute the user's materialized statistics from session history.

        Overwrites total_sessions, total_study_hours, average_session_length,
        last_study_date, streaks and completed_topics.

        Raises:
            NotFoundError: Unknown user.
        """
        async with self.session_maker() as db:
            if await db.get(User, user_id) is None:
                raise NotFoundError(f"User {user_id} not found")

        overview = await self.statistics.get_user_stats(user_id)
        last_study_date = await self.statistics.get_last_study_date(user_id)
        streak = await self.streaks.calculate_for_user(user_id)

        total_hours = overview.total_time / 60
        average_length = (
            overview.total_time / overview.total_sessions if overview.total_sessions else 0.0
        )

        async with self.session_maker() as db:
            completed_topics = await db.scalar(
                select(func.count(UserProgress.id)).where(
                    UserProgress.user_id == user_id,
                    UserProgress.status == ProgressStatus.COMPLETED.value,
                )
            )
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            drift = (
                user.total_sessions != overview.total_sessions
                or abs((user.total_study_hours or 0) - total_hours) > 1e-9
            )
            user.total_sessions = overview.total_sessions
            user.total_study_hours = total_hours
            user.average_session_length = average_length
            user.last_study_date = last_study_date
            user.current_streak = streak.current
            user.longest_streak = streak.longest
            user.completed_topics = completed_topics or 0
            await db.commit()
            await db.refresh(user)

            if drift:
                logger.warning(f"Reconciled drifted statistics for user {user_id}")
            else:
                logger.info(f"Reconciled statistics for user {user_id}")

            return UserStatisticsResponse(
                user_id=user.id,
                total_study_hours=user.total_study_hours,
                current_streak=user.current_streak,
                longest_streak=user.longest_streak,
                last_study_date=(
                    ensure_utc(user.last_study_date) if user.last_study_date else None
                ),
                total_sessions=user.total_sessions,
                completed_topics=user.completed_topics,
                average_session_length=user.average_session_length,
            )

    async def get_user_statistics(self, user_id: int) -> UserStatisticsResponse:
        """
        Current materialized statistics, without recomputing.

        Raises:
            NotFoundError: Unknown user.
        """
        async with self.session_maker() as db:
            user = await db.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            return UserStatisticsResponse(
                user_id=user.id,
                total_study_hours=user.total_study_hours or 0.0,
                current_streak=user.current_streak or 0,
                longest_streak=user.longest_streak or 0,
                last_study_date=(
                    ensure_utc(user.last_study_date) if user.last_study_date else None
                ),
                total_sessions=user.total_sessions or 0,
                completed_topics=user.completed_topics or 0,
                average_session_length=user.average_session_length or 0.0,
            )
