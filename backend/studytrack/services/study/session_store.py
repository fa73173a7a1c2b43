"""
Study Session Store

Persistence adapter between StudySessionSnapshot and the study_sessions
table. Every call opens its own short-lived AsyncSession, so concurrent
callers never share a session.

Writes of lifecycle transitions are optimistic: the UPDATE only matches the
row if its status and version are still the ones the caller read. A
mismatch means another request got there first; the write is rejected with
StateTransitionError and nothing is changed.

Usage:
    from studytrack.services.study.session_store import SessionStore

    store = SessionStore(async_session_maker)
    before = await store.get(session_id)
    after = await store.commit_transition(before, pause(before, now).session, "pause")
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studytrack.db.models import StudySession
from studytrack.domain.sessions import (
    BreakRecord,
    Environment,
    FocusMetrics,
    Productivity,
    StudySessionSnapshot,
)
from studytrack.domain.temporal import ensure_utc
from studytrack.enums.study import SessionStatus, SessionType
from studytrack.middleware.error_handling import NotFoundError, StateTransitionError

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SessionStatus.ACTIVE.value, SessionStatus.PAUSED.value)


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def to_columns(session: StudySessionSnapshot) -> dict[str, Any]:
    """Flatten a snapshot into study_sessions column values."""
    return {
        "user_id": session.user_id,
        "topic_id": session.topic_id,
        "session_type": session.session_type.value,
        "planned_duration": session.planned_duration,
        "actual_duration": session.actual_duration,
        "start_time": ensure_utc(session.start_time),
        "end_time": _utc_or_none(session.end_time),
        "status": session.status.value,
        "is_completed": session.is_completed,
        "paused_time": session.paused_time,
        "notes": session.notes,
        "productivity_rating": session.productivity.rating,
        "productivity_comment": session.productivity.comment,
        "interruption_count": session.focus_metrics.interruption_count,
        "deep_focus_time": session.focus_metrics.deep_focus_time,
        "average_focus_level": session.focus_metrics.average_focus_level,
        "environment": (
            session.environment.model_dump(mode="json") if session.environment else None
        ),
        "breaks": [b.model_dump(mode="json") for b in session.breaks],
        "break_count": len(session.breaks),
        "tags": list(session.tags),
    }


def to_snapshot(row: StudySession) -> StudySessionSnapshot:
    """Build an immutable snapshot from a study_sessions row."""
    return StudySessionSnapshot(
        id=row.id,
        user_id=row.user_id,
        topic_id=row.topic_id,
        session_type=SessionType(row.session_type),
        planned_duration=row.planned_duration,
        actual_duration=row.actual_duration,
        start_time=ensure_utc(row.start_time),
        end_time=_utc_or_none(row.end_time),
        status=SessionStatus(row.status),
        is_completed=row.is_completed,
        paused_time=row.paused_time or 0,
        notes=row.notes,
        productivity=Productivity(
            rating=row.productivity_rating, comment=row.productivity_comment
        ),
        environment=Environment.model_validate(row.environment)
        if row.environment
        else None,
        breaks=tuple(BreakRecord.model_validate(b) for b in row.breaks or ()),
        focus_metrics=FocusMetrics(
            interruption_count=row.interruption_count or 0,
            deep_focus_time=row.deep_focus_time or 0,
            average_focus_level=row.average_focus_level,
        ),
        tags=tuple(row.tags or ()),
        version=row.version,
    )


class SessionStore:
    """Reads and writes study sessions as snapshots."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def insert(self, session: StudySessionSnapshot) -> StudySessionSnapshot:
        """Persist a new session and return it with its id and version."""
        async with self.session_maker() as db:
            row = StudySession(**to_columns(session), version=1)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return to_snapshot(row)

    async def get(self, session_id: int) -> StudySessionSnapshot:
        """
        Load a session.

        Raises:
            NotFoundError: No session with this id.
        """
        async with self.session_maker() as db:
            row = await db.get(StudySession, session_id)
            if row is None:
                raise NotFoundError(f"Session {session_id} not found")
            return to_snapshot(row)

    async def commit_transition(
        self,
        before: StudySessionSnapshot,
        after: StudySessionSnapshot,
        action: str,
    ) -> StudySessionSnapshot:
        """
        Write `after` only if the stored row still matches `before`.

        The status/version check happens inside the UPDATE's WHERE clause,
        against the value persisted at write time.

        Raises:
            StateTransitionError: The row changed since `before` was read.
            NotFoundError: The row was deleted.
        """
        stmt = (
            update(StudySession)
            .where(
                StudySession.id == before.id,
                StudySession.status == before.status.value,
                StudySession.version == before.version,
            )
            .values(**to_columns(after), version=StudySession.version + 1)
            .execution_options(synchronize_session=False)
        )

        async with self.session_maker() as db:
            result = await db.execute(stmt)
            if result.rowcount != 1:
                await db.rollback()
                current = await db.get(StudySession, before.id)
                if current is None:
                    raise NotFoundError(f"Session {before.id} not found")
                logger.info(
                    f"Rejected {action} on session {before.id}: stored "
                    f"status={current.status} version={current.version}, "
                    f"expected status={before.status.value} version={before.version}"
                )
                raise StateTransitionError(
                    f"Session {before.id} was modified concurrently; "
                    f"it is now {current.status}",
                    current_status=current.status,
                    action=action,
                    session_id=before.id,
                )
            await db.commit()

        return after.model_copy(update={"version": before.version + 1})

    async def delete(self, session: StudySessionSnapshot) -> None:
        """
        Delete a session if it is unchanged since it was read.

        Raises:
            StateTransitionError: The row changed since `session` was read.
        """
        stmt = (
            delete(StudySession)
            .where(
                StudySession.id == session.id,
                StudySession.version == session.version,
            )
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as db:
            result = await db.execute(stmt)
            if result.rowcount != 1:
                await db.rollback()
                raise StateTransitionError(
                    f"Session {session.id} was modified concurrently",
                    current_status=None,
                    action="delete",
                    session_id=session.id,
                )
            await db.commit()

    async def find_open_session(self, user_id: int) -> Optional[StudySessionSnapshot]:
        """The user's active or paused session, if any."""
        async with self.session_maker() as db:
            result = await db.execute(
                select(StudySession)
                .where(
                    StudySession.user_id == user_id,
                    StudySession.status.in_(OPEN_STATUSES),
                )
                .order_by(StudySession.start_time.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return to_snapshot(row) if row else None

    async def list_for_user(
        self,
        user_id: int,
        status: Optional[SessionStatus] = None,
        topic_id: Optional[int] = None,
        session_type: Optional[SessionType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[StudySessionSnapshot], int]:
        """
        Filtered page of a user's sessions, newest first.

        Returns:
            (sessions on this page, total matching count)
        """
        conditions = [StudySession.user_id == user_id]
        if status is not None:
            conditions.append(StudySession.status == status.value)
        if topic_id is not None:
            conditions.append(StudySession.topic_id == topic_id)
        if session_type is not None:
            conditions.append(StudySession.session_type == session_type.value)
        if start_date is not None:
            conditions.append(StudySession.start_time >= ensure_utc(start_date))
        if end_date is not None:
            conditions.append(StudySession.start_time <= ensure_utc(end_date))

        async with self.session_maker() as db:
            total = await db.scalar(
                select(func.count(StudySession.id)).where(*conditions)
            )
            result = await db.execute(
                select(StudySession)
                .where(*conditions)
                .order_by(StudySession.start_time.desc(), StudySession.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [to_snapshot(row) for row in result.scalars().all()], total or 0
