"""
Study Session Lifecycle Service

Orchestrates the study-session lifecycle: loads the current snapshot,
applies a pure transition from studytrack.domain.sessions, persists it
through the optimistic SessionStore and, on completion, hands the result to
the ProgressSynchronizer.

Lifecycle:
    create → planned
    start → active ⇄ pause/resume → paused
    complete → completed    cancel → cancelled

A transition that loses a race with a concurrent request is rejected by the
store with StateTransitionError; the caller can re-read and retry.

Usage:
    from studytrack.services.study.session_service import SessionLifecycleService

    service = SessionLifecycleService(async_session_maker, clock, synchronizer)
    session = await service.create_session(user_id=1, topic_id=2, planned_duration=25)
    session = await service.start_session(session.id)
    session, sync = await service.complete_session(session.id, {"tags": ["go"]})
"""

import logging
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studytrack.db.models import Topic, User
from studytrack.domain import sessions as lifecycle
from studytrack.domain.events import DomainEvent
from studytrack.domain.sessions import (
    BreakData,
    Environment,
    SessionCompletionData,
    SessionDetailsUpdate,
    StudySessionSnapshot,
    Transition,
)
from studytrack.domain.temporal import Clock, SystemClock
from studytrack.enums.study import SessionStatus, SessionType
from studytrack.middleware.error_handling import (
    ConflictError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)
from studytrack.services.study.progress_sync import ProgressSynchronizer, SyncResult
from studytrack.services.study.session_store import SessionStore

logger = logging.getLogger(__name__)

DELETABLE = frozenset({SessionStatus.PLANNED, SessionStatus.CANCELLED})


class SessionLifecycleService:
    """
    Study session orchestration service.

    Each method is one unit of work against the database; none of them
    share an AsyncSession, so concurrent calls are safe to gather.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Optional[Clock] = None,
        synchronizer: Optional[ProgressSynchronizer] = None,
    ):
        """
        Initialize the lifecycle service.

        Args:
            session_maker: Factory for short-lived database sessions
            clock: Source of "now" (SystemClock by default)
            synchronizer: Applies completions to user/topic aggregates.
                Without one, completions only update the session.
        """
        self.session_maker = session_maker
        self.clock = clock or SystemClock()
        self.store = SessionStore(session_maker)
        self.synchronizer = synchronizer

    # =========================================================================
    # Helpers
    # =========================================================================

    def _log_events(self, events: tuple[DomainEvent, ...], session_id: Optional[int]):
        for event in events:
            logger.info(f"{event.event_type} session={session_id}")
            logger.debug(f"Event payload: {event.to_dict()}")

    async def _apply(
        self, session_id: int, action: str, transition_fn, *args: Any
    ) -> StudySessionSnapshot:
        """Load, transition and persist in one optimistic step."""
        before = await self.store.get(session_id)
        transition: Transition = transition_fn(before, self.clock.now(), *args)
        after = await self.store.commit_transition(before, transition.session, action)
        self._log_events(transition.events, session_id)
        return after

    async def _require_user_and_topic(self, user_id: int, topic_id: int) -> None:
        async with self.session_maker() as db:
            if await db.get(User, user_id) is None:
                raise NotFoundError(f"User {user_id} not found")
            topic = await db.get(Topic, topic_id)
            if topic is None:
                raise NotFoundError(f"Topic {topic_id} not found")
            if not topic.is_active:
                raise ValidationError(
                    f"Topic {topic_id} is not active",
                    details={"field": "topic_id", "value": topic_id},
                )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_session(
        self,
        user_id: int,
        topic_id: int,
        planned_duration: int,
        session_type: Union[SessionType, str] = SessionType.FOCUSED,
        notes: Optional[str] = None,
        environment: Union[Environment, dict[str, Any], None] = None,
        tags: Optional[list[str]] = None,
    ) -> StudySessionSnapshot:
        """
        Plan a new session for an existing user and active topic.

        Raises:
            ValidationError: Bad duration/type/notes, or inactive topic.
            NotFoundError: Unknown user or topic.
            ConflictError: The user already has an active or paused session.
        """
        transition = lifecycle.plan_session(
            user_id=user_id,
            topic_id=topic_id,
            planned_duration=planned_duration,
            now=self.clock.now(),
            session_type=session_type,
            notes=notes,
            environment=environment,
            tags=tuple(tags or ()),
        )
        await self._require_user_and_topic(user_id, topic_id)

        # Not atomic with the insert; two concurrent creates can both pass.
        open_session = await self.store.find_open_session(user_id)
        if open_session is not None:
            raise ConflictError(
                "You already have an active study session",
                details={"active_session_id": open_session.id},
            )

        session = await self.store.insert(transition.session)
        self._log_events(transition.events, session.id)
        logger.info(
            f"Created session {session.id} for user {user_id} on topic {topic_id} "
            f"({session.session_type.value}, {planned_duration} min)"
        )
        return session

    async def start_session(self, session_id: int) -> StudySessionSnapshot:
        """planned → active."""
        return await self._apply(session_id, "start", lifecycle.start)

    async def pause_session(self, session_id: int) -> StudySessionSnapshot:
        """active → paused."""
        return await self._apply(session_id, "pause", lifecycle.pause)

    async def resume_session(
        self, session_id: int, pause_duration: int = 0
    ) -> StudySessionSnapshot:
        """paused → active, adding `pause_duration` minutes to paused_time."""
        return await self._apply(session_id, "resume", lifecycle.resume, pause_duration)

    async def complete_session(
        self,
        session_id: int,
        session_data: Union[SessionCompletionData, dict[str, Any], None] = None,
    ) -> tuple[StudySessionSnapshot, Optional[SyncResult]]:
        """
        Complete a session and synchronize progress.

        The synchronizer only runs after the completed session has been
        committed, and only for the request whose write won, so each
        completion is applied downstream exactly once.

        Returns:
            (completed session, sync result or None without a synchronizer)
        """
        data = lifecycle.coerce(SessionCompletionData, session_data)
        before = await self.store.get(session_id)
        transition = lifecycle.complete(before, self.clock.now(), data)
        after = await self.store.commit_transition(before, transition.session, "complete")
        self._log_events(transition.events, session_id)
        logger.info(
            f"Completed session {session_id}: actual_duration={after.actual_duration} "
            f"min, paused_time={after.paused_time} min"
        )

        if self.synchronizer is None:
            return after, None
        result = await self.synchronizer.on_session_completed(after, data)
        return after, result

    async def cancel_session(
        self, session_id: int, reason: Optional[str] = None
    ) -> StudySessionSnapshot:
        """Non-terminal → cancelled."""
        return await self._apply(session_id, "cancel", lifecycle.cancel, reason)

    async def add_break(
        self,
        session_id: int,
        break_data: Union[BreakData, dict[str, Any], None] = None,
    ) -> StudySessionSnapshot:
        """Record a break on an unfinished session."""
        return await self._apply(session_id, "add_break", lifecycle.add_break, break_data)

    async def update_session(
        self,
        session_id: int,
        changes: Union[SessionDetailsUpdate, dict[str, Any]],
    ) -> StudySessionSnapshot:
        """Edit notes, productivity, environment, focus metrics or tags."""
        return await self._apply(
            session_id, "update", lifecycle.update_details, changes
        )

    async def delete_session(self, session_id: int) -> None:
        """
        Delete a planned or cancelled session.

        Completed sessions are history and feed the user's statistics;
        active and paused ones must be cancelled first.

        Raises:
            StateTransitionError: Session is active, paused or completed.
        """
        session = await self.store.get(session_id)
        if session.status not in DELETABLE:
            raise StateTransitionError(
                "Only planned or cancelled sessions can be deleted",
                current_status=session.status.value,
                action="delete",
                session_id=session_id,
            )
        await self.store.delete(session)
        logger.info(f"Deleted session {session_id}")

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_session(self, session_id: int) -> StudySessionSnapshot:
        return await self.store.get(session_id)

    async def get_active_session(self, user_id: int) -> Optional[StudySessionSnapshot]:
        """The user's active or paused session, if any."""
        return await self.store.find_open_session(user_id)

    async def list_sessions(
        self,
        user_id: int,
        status: Optional[SessionStatus] = None,
        topic_id: Optional[int] = None,
        session_type: Optional[SessionType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[StudySessionSnapshot], int]:
        """Page of sessions, newest first, with the total match count."""
        return await self.store.list_for_user(
            user_id,
            status=status,
            topic_id=topic_id,
            session_type=session_type,
            start_date=start_date,
            end_date=end_date,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
