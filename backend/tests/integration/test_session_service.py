"""
Integration Tests for the Study Session Lifecycle Service

Runs the lifecycle against a real (SQLite) database:
- Create/start/pause/resume/complete with persisted versions
- Existence, activity and one-open-session checks on create
- Delete rules
- Concurrent transitions on the same session
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy import select

from studytrack.db.models import StudySession, User
from studytrack.enums.study import SessionStatus, SessionType
from studytrack.middleware.error_handling import (
    ConflictError,
    NotFoundError,
    StateTransitionError,
    ValidationError,
)

pytestmark = pytest.mark.integration


# ============================================================================
# Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def learner(make_user, make_topic):
    """A user and an active topic."""
    user = await make_user()
    topic = await make_topic()
    return user, topic


# ============================================================================
# Lifecycle
# ============================================================================


class TestLifecycle:
    """End-to-end transitions through the service."""

    @pytest.mark.asyncio
    async def test_create_persists_planned_session(self, session_service, learner) -> None:
        user, topic = learner

        session = await session_service.create_session(
            user_id=user.id,
            topic_id=topic.id,
            planned_duration=25,
            session_type="pomodoro",
            tags=["go", "  "],
        )

        assert session.id is not None
        assert session.status == SessionStatus.PLANNED
        assert session.session_type == SessionType.POMODORO
        assert session.tags == ("go",)
        assert session.version == 1

        stored = await session_service.get_session(session.id)
        assert stored == session

    @pytest.mark.asyncio
    async def test_pomodoro_with_pause(self, session_service, learner, clock) -> None:
        """25 minutes wall clock, 10 of them paused, completes with 15."""
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 20)

        session = await session_service.start_session(session.id)
        assert session.status == SessionStatus.ACTIVE
        assert session.start_time == clock.now()

        clock.advance(minutes=10)
        session = await session_service.pause_session(session.id)
        assert session.status == SessionStatus.PAUSED

        clock.advance(minutes=10)
        session = await session_service.resume_session(session.id, pause_duration=10)
        assert session.paused_time == 10

        clock.advance(minutes=5)
        session, sync = await session_service.complete_session(session.id)

        assert session.status == SessionStatus.COMPLETED
        assert session.is_completed is True
        assert session.actual_duration == 15
        assert session.end_time == clock.now()
        assert session.version == 5
        assert sync is not None and sync.user_updated

        stored = await session_service.get_session(session.id)
        assert stored.actual_duration == 15
        assert stored.version == 5

    @pytest.mark.asyncio
    async def test_illegal_transition_keeps_stored_row(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 25)

        with pytest.raises(StateTransitionError) as exc_info:
            await session_service.pause_session(session.id)

        assert exc_info.value.details["current_status"] == "planned"
        stored = await session_service.get_session(session.id)
        assert stored.status == SessionStatus.PLANNED
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_completed_session_is_terminal(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 25)
        await session_service.start_session(session.id)
        await session_service.complete_session(session.id)

        with pytest.raises(StateTransitionError):
            await session_service.complete_session(session.id)
        with pytest.raises(StateTransitionError):
            await session_service.cancel_session(session.id)

    @pytest.mark.asyncio
    async def test_cancel_records_reason(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 25)

        session = await session_service.cancel_session(session.id, reason="fire alarm")

        assert session.status == SessionStatus.CANCELLED
        assert session.notes == "Cancelled: fire alarm"

    @pytest.mark.asyncio
    async def test_add_break_and_update(self, session_service, learner, clock) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 50)
        await session_service.start_session(session.id)

        start = clock.now()
        session = await session_service.add_break(
            session.id, {"start_time": start, "end_time": clock.advance(minutes=5)}
        )
        session = await session_service.update_session(
            session.id, {"notes": "chapter 3", "productivity": {"rating": 4}}
        )

        stored = await session_service.get_session(session.id)
        assert len(stored.breaks) == 1
        assert stored.breaks[0].duration == 5
        assert stored.notes == "chapter 3"
        assert stored.productivity.rating == 4


# ============================================================================
# Creation checks
# ============================================================================


class TestCreateChecks:
    """Tests for validation performed before a session is created."""

    @pytest.mark.asyncio
    async def test_unknown_user(self, session_service, make_topic) -> None:
        topic = await make_topic()
        with pytest.raises(NotFoundError):
            await session_service.create_session(999, topic.id, 25)

    @pytest.mark.asyncio
    async def test_unknown_topic(self, session_service, make_user) -> None:
        user = await make_user()
        with pytest.raises(NotFoundError):
            await session_service.create_session(user.id, 999, 25)

    @pytest.mark.asyncio
    async def test_inactive_topic(self, session_service, make_user, make_topic) -> None:
        user = await make_user()
        topic = await make_topic(is_active=False)
        with pytest.raises(ValidationError):
            await session_service.create_session(user.id, topic.id, 25)

    @pytest.mark.asyncio
    async def test_duration_checked_before_lookup(self, session_service) -> None:
        with pytest.raises(ValidationError):
            await session_service.create_session(999, 999, 0)

    @pytest.mark.asyncio
    async def test_one_open_session_per_user(self, session_service, learner) -> None:
        user, topic = learner
        first = await session_service.create_session(user.id, topic.id, 25)

        # Planned sessions don't block
        await session_service.create_session(user.id, topic.id, 25)

        await session_service.start_session(first.id)
        with pytest.raises(ConflictError) as exc_info:
            await session_service.create_session(user.id, topic.id, 25)

        assert exc_info.value.details["active_session_id"] == first.id
        active = await session_service.get_active_session(user.id)
        assert active.id == first.id


# ============================================================================
# Delete
# ============================================================================


class TestDelete:
    """Tests for deleting sessions."""

    @pytest.mark.asyncio
    async def test_delete_planned(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 25)

        await session_service.delete_session(session.id)

        with pytest.raises(NotFoundError):
            await session_service.get_session(session.id)

    @pytest.mark.asyncio
    async def test_delete_cancelled(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 25)
        await session_service.cancel_session(session.id)

        await session_service.delete_session(session.id)

    @pytest.mark.asyncio
    async def test_completed_cannot_be_deleted(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 25)
        await session_service.start_session(session.id)
        await session_service.complete_session(session.id)

        with pytest.raises(StateTransitionError) as exc_info:
            await session_service.delete_session(session.id)
        assert exc_info.value.details["action"] == "delete"

    @pytest.mark.asyncio
    async def test_delete_missing(self, session_service) -> None:
        with pytest.raises(NotFoundError):
            await session_service.delete_session(12345)


# ============================================================================
# Listing
# ============================================================================


class TestListSessions:
    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, session_service, learner, clock) -> None:
        user, topic = learner
        ids = []
        for _ in range(3):
            session = await session_service.create_session(user.id, topic.id, 25)
            ids.append(session.id)
            clock.advance(minutes=1)
        await session_service.cancel_session(ids[0])

        page, total = await session_service.list_sessions(user.id, page=1, page_size=2)
        assert total == 3
        assert [s.id for s in page] == [ids[2], ids[1]]

        cancelled, total = await session_service.list_sessions(
            user.id, status=SessionStatus.CANCELLED
        )
        assert total == 1
        assert cancelled[0].id == ids[0]


# ============================================================================
# Concurrency
# ============================================================================


class TestConcurrentTransitions:
    """Two requests racing on the same session."""

    @pytest.mark.asyncio
    async def test_double_complete_applies_once(
        self, session_service, session_maker, learner, clock
    ) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 30)
        await session_service.start_session(session.id)
        clock.advance(minutes=30)

        results = await asyncio.gather(
            session_service.complete_session(session.id),
            session_service.complete_session(session.id),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], StateTransitionError)

        async with session_maker() as db:
            row = (
                await db.execute(select(StudySession).where(StudySession.id == session.id))
            ).scalar_one()
            user_row = await db.get(User, user.id)

        assert row.status == "completed"
        assert row.actual_duration == 30
        assert user_row.total_sessions == 1
        assert user_row.total_study_hours == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_pause_racing_cancel(self, session_service, learner) -> None:
        user, topic = learner
        session = await session_service.create_session(user.id, topic.id, 30)
        await session_service.start_session(session.id)

        results = await asyncio.gather(
            session_service.pause_session(session.id),
            session_service.cancel_session(session.id),
            return_exceptions=True,
        )

        stored = await session_service.get_session(session.id)
        errors = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        # Cancel is also legal from paused, so both may win one after the other
        assert successes
        assert all(isinstance(e, StateTransitionError) for e in errors)
        assert stored.version == 2 + len(successes)
