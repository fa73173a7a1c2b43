"""
Study Session State Machine

Pure, stateless lifecycle rules for a single study session. Every operation
takes an immutable StudySessionSnapshot plus the current instant and returns
a Transition: the new snapshot and the domain events it emitted. Nothing
here touches the database; persistence is handled by SessionStore and
orchestration by SessionLifecycleService.

Lifecycle:
    planned ──start──▶ active ◀──resume── paused
                         │ └────pause─────▶ │
    {planned, active, paused} ──complete──▶ completed   (terminal)
    {planned, active, paused} ──cancel────▶ cancelled   (terminal)

Any operation on a terminal session raises StateTransitionError. In
particular complete() and cancel() are not idempotent: repeating them is
rejected rather than silently ignored.

Usage:
    from studytrack.domain.sessions import complete, plan_session, start

    planned = plan_session(user_id=1, topic_id=2, planned_duration=25, now=now)
    active = start(planned.session, now)
    done = complete(active.session, later, SessionCompletionData(tags=["go"]))
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from studytrack.config import settings
from studytrack.domain.events import (
    BreakAdded,
    DomainEvent,
    SessionCancelled,
    SessionCompleted,
    SessionDetailsUpdated,
    SessionPaused,
    SessionPlanned,
    SessionResumed,
    SessionStarted,
)
from studytrack.domain.temporal import elapsed_minutes, ensure_utc
from studytrack.enums.study import (
    BreakType,
    Distraction,
    SessionStatus,
    SessionType,
    StudyLocation,
    StudyTool,
)
from studytrack.middleware.error_handling import StateTransitionError, ValidationError


# ===========================================
# Value objects
# ===========================================


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class FocusMetrics(_Frozen):
    """Self-reported focus quality for a session."""

    interruption_count: int = Field(0, ge=0)
    deep_focus_time: int = Field(0, ge=0)  # Minutes
    average_focus_level: Optional[float] = Field(None, ge=1, le=10)


class Productivity(_Frozen):
    """Post-session productivity rating."""

    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None


class Environment(_Frozen):
    """Where and with what a session took place."""

    location: StudyLocation = StudyLocation.HOME
    distractions: tuple[Distraction, ...] = ()
    tools: tuple[StudyTool, ...] = ()


class BreakRecord(_Frozen):
    """A break taken inside a session."""

    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None  # Minutes, set when end_time is known
    type: BreakType = BreakType.SHORT


class StudySessionSnapshot(_Frozen):
    """
    Immutable view of a study session at one point in time.

    `version` is the persisted version this snapshot was read at. Transitions
    never change it; the store bumps it when the write succeeds.
    """

    id: Optional[int] = None
    user_id: int
    topic_id: int
    session_type: SessionType = SessionType.FOCUSED
    planned_duration: int
    actual_duration: Optional[int] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    status: SessionStatus = SessionStatus.PLANNED
    is_completed: bool = False
    paused_time: int = 0
    notes: Optional[str] = None
    productivity: Productivity = Productivity()
    environment: Optional[Environment] = None
    breaks: tuple[BreakRecord, ...] = ()
    focus_metrics: FocusMetrics = FocusMetrics()
    tags: tuple[str, ...] = ()
    version: int = 1

    @property
    def efficiency(self) -> int:
        """Actual vs planned duration as a rounded percentage."""
        if not self.actual_duration or not self.planned_duration:
            return 0
        return int(self.actual_duration / self.planned_duration * 100 + 0.5)

    @property
    def focus_score(self) -> float:
        """Focus level scaled to 0-100, minus 5 points per interruption."""
        level = self.focus_metrics.average_focus_level
        if not level:
            return 0
        score = level * 10 - self.focus_metrics.interruption_count * 5
        return max(0, min(100, score))


# ===========================================
# Operation inputs
# ===========================================


class SessionCompletionData(_Frozen):
    """
    Optional data supplied when completing a session.

    notes/productivity/focus_metrics/tags are merged into the session.
    completed_milestones, progress and topic_rating are not session fields;
    the progress synchronizer applies them to the user's topic progress.
    """

    notes: Optional[str] = None
    productivity: Optional[Productivity] = None
    focus_metrics: Optional[FocusMetrics] = None
    tags: Optional[tuple[str, ...]] = None
    completed_milestones: tuple[str, ...] = ()
    progress: Optional[int] = Field(None, ge=0, le=100)
    topic_rating: Optional[int] = Field(None, ge=1, le=5)


class BreakData(_Frozen):
    """Break to record. start_time defaults to now."""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    type: BreakType = BreakType.SHORT


class SessionDetailsUpdate(_Frozen):
    """Editable descriptive fields of a non-terminal session."""

    notes: Optional[str] = None
    productivity: Optional[Productivity] = None
    environment: Optional[Environment] = None
    focus_metrics: Optional[FocusMetrics] = None
    tags: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class Transition:
    """Result of a lifecycle operation."""

    session: StudySessionSnapshot
    events: tuple[DomainEvent, ...] = field(default_factory=tuple)


# ===========================================
# Validation helpers
# ===========================================

_ModelT = TypeVar("_ModelT", bound=BaseModel)

NON_TERMINAL = frozenset(
    {SessionStatus.PLANNED, SessionStatus.ACTIVE, SessionStatus.PAUSED}
)

# action -> (allowed source statuses, message on violation)
_TRANSITION_RULES: dict[str, tuple[frozenset[SessionStatus], str]] = {
    "start": (frozenset({SessionStatus.PLANNED}), "Can only start planned sessions"),
    "pause": (frozenset({SessionStatus.ACTIVE}), "Can only pause active sessions"),
    "resume": (frozenset({SessionStatus.PAUSED}), "Can only resume paused sessions"),
    "complete": (NON_TERMINAL, "Can only complete planned, active or paused sessions"),
    "cancel": (NON_TERMINAL, "Can only cancel planned, active or paused sessions"),
    "add_break": (NON_TERMINAL, "Can only add breaks to unfinished sessions"),
    "update": (NON_TERMINAL, "Completed and cancelled sessions are read-only"),
}


def coerce(
    model: type[_ModelT], data: Union[_ModelT, dict[str, Any], None]
) -> Optional[_ModelT]:
    """
    Build `model` from a dict (or pass an instance through).

    Pydantic validation failures are re-raised as ValidationError so that
    callers see one error type for bad input.
    """
    if data is None or isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}",
            details={
                "errors": e.errors(
                    include_url=False, include_context=False, include_input=False
                )
            },
        ) from e


def _check_notes(notes: Optional[str], field_name: str = "notes") -> None:
    limit = settings.MAX_SESSION_NOTES_LENGTH
    if notes is not None and len(notes) > limit:
        raise ValidationError(
            f"{field_name} cannot exceed {limit} characters",
            details={"field": field_name, "length": len(notes)},
        )


def _require(session: StudySessionSnapshot, action: str) -> None:
    allowed, message = _TRANSITION_RULES[action]
    if session.status not in allowed:
        raise StateTransitionError(
            message,
            current_status=session.status.value,
            action=action,
            session_id=session.id,
        )


def can_transition(session: StudySessionSnapshot, action: str) -> bool:
    """Whether `action` is legal from the session's current status."""
    return session.status in _TRANSITION_RULES[action][0]


# ===========================================
# Operations
# ===========================================


def plan_session(
    user_id: int,
    topic_id: int,
    planned_duration: int,
    now: datetime,
    session_type: Union[SessionType, str] = SessionType.FOCUSED,
    notes: Optional[str] = None,
    environment: Union[Environment, dict[str, Any], None] = None,
    tags: tuple[str, ...] = (),
) -> Transition:
    """
    Create a new session in the `planned` state.

    Raises:
        ValidationError: planned_duration outside the allowed range, unknown
            session type, notes too long or a malformed environment.
    """
    low = settings.MIN_PLANNED_DURATION_MINUTES
    high = settings.MAX_PLANNED_DURATION_MINUTES
    if isinstance(planned_duration, bool) or not isinstance(planned_duration, int):
        raise ValidationError(
            "planned_duration must be a whole number of minutes",
            details={"field": "planned_duration", "value": planned_duration},
        )
    if not low <= planned_duration <= high:
        raise ValidationError(
            f"planned_duration must be between {low} and {high} minutes",
            details={"field": "planned_duration", "value": planned_duration},
        )
    try:
        session_type = SessionType(session_type)
    except ValueError as e:
        raise ValidationError(
            f"Unknown session type: {session_type}",
            details={"field": "session_type", "value": str(session_type)},
        ) from e
    _check_notes(notes)

    session = StudySessionSnapshot(
        user_id=user_id,
        topic_id=topic_id,
        session_type=session_type,
        planned_duration=planned_duration,
        start_time=ensure_utc(now),
        notes=notes,
        environment=coerce(Environment, environment),
        tags=tuple(t.strip() for t in tags if t and t.strip()),
    )
    event = SessionPlanned(
        session_id=None,
        occurred_at=session.start_time,
        user_id=user_id,
        topic_id=topic_id,
        planned_duration=planned_duration,
    )
    return Transition(session, (event,))


def start(session: StudySessionSnapshot, now: datetime) -> Transition:
    """planned → active. Resets start_time to now."""
    _require(session, "start")
    now = ensure_utc(now)
    updated = session.model_copy(
        update={"status": SessionStatus.ACTIVE, "start_time": now}
    )
    return Transition(updated, (SessionStarted(session_id=session.id, occurred_at=now),))


def pause(session: StudySessionSnapshot, now: datetime) -> Transition:
    """active → paused."""
    _require(session, "pause")
    now = ensure_utc(now)
    updated = session.model_copy(update={"status": SessionStatus.PAUSED})
    return Transition(updated, (SessionPaused(session_id=session.id, occurred_at=now),))


def resume(
    session: StudySessionSnapshot, now: datetime, pause_duration: int = 0
) -> Transition:
    """
    paused → active, adding the client-reported pause length to paused_time.

    Raises:
        ValidationError: pause_duration is negative.
        StateTransitionError: the session is not paused.
    """
    _require(session, "resume")
    if pause_duration is None:
        pause_duration = 0
    if pause_duration < 0:
        raise ValidationError(
            "pause_duration cannot be negative",
            details={"field": "pause_duration", "value": pause_duration},
        )
    now = ensure_utc(now)
    updated = session.model_copy(
        update={
            "status": SessionStatus.ACTIVE,
            "paused_time": session.paused_time + int(pause_duration),
        }
    )
    event = SessionResumed(
        session_id=session.id, occurred_at=now, pause_duration=int(pause_duration)
    )
    return Transition(updated, (event,))


def complete(
    session: StudySessionSnapshot,
    now: datetime,
    data: Union[SessionCompletionData, dict[str, Any], None] = None,
) -> Transition:
    """
    Non-terminal → completed.

    actual_duration = round(elapsed minutes) − paused_time, clamped at 0.
    Paused time larger than the elapsed wall-clock span is treated as
    malformed client input and simply clamps the result.
    """
    _require(session, "complete")
    data = coerce(SessionCompletionData, data) or SessionCompletionData()
    _check_notes(data.notes)
    now = ensure_utc(now)

    actual = max(0, elapsed_minutes(session.start_time, now) - session.paused_time)

    update: dict[str, Any] = {
        "status": SessionStatus.COMPLETED,
        "is_completed": True,
        "end_time": now,
        "actual_duration": actual,
    }
    if data.notes:
        update["notes"] = data.notes
    if data.productivity is not None:
        update["productivity"] = data.productivity
    if data.focus_metrics is not None:
        merged = session.focus_metrics.model_dump()
        merged.update(data.focus_metrics.model_dump(exclude_unset=True))
        update["focus_metrics"] = FocusMetrics(**merged)
    if data.tags is not None:
        update["tags"] = tuple(data.tags)

    updated = session.model_copy(update=update)
    event = SessionCompleted(
        session_id=session.id,
        occurred_at=now,
        user_id=session.user_id,
        topic_id=session.topic_id,
        actual_duration=actual,
        end_time=now,
    )
    return Transition(updated, (event,))


def cancel(
    session: StudySessionSnapshot, now: datetime, reason: Optional[str] = None
) -> Transition:
    """Non-terminal → cancelled. The reason is appended to the notes."""
    _require(session, "cancel")
    now = ensure_utc(now)

    notes = session.notes
    if reason:
        notes = (
            f"{notes}\nCancellation reason: {reason}" if notes else f"Cancelled: {reason}"
        )
        _check_notes(notes)

    updated = session.model_copy(
        update={"status": SessionStatus.CANCELLED, "end_time": now, "notes": notes}
    )
    event = SessionCancelled(session_id=session.id, occurred_at=now, reason=reason)
    return Transition(updated, (event,))


def add_break(
    session: StudySessionSnapshot,
    now: datetime,
    data: Union[BreakData, dict[str, Any], None] = None,
) -> Transition:
    """
    Append a break record to a non-terminal session.

    Duration is the rounded minute span when both ends are known.
    """
    _require(session, "add_break")
    data = coerce(BreakData, data) or BreakData()
    now = ensure_utc(now)

    break_start = ensure_utc(data.start_time) if data.start_time else now
    break_end = ensure_utc(data.end_time) if data.end_time else None
    duration = None
    if break_end is not None:
        if break_end < break_start:
            raise ValidationError(
                "Break end_time must not be before start_time",
                details={"field": "end_time"},
            )
        duration = elapsed_minutes(break_start, break_end)

    record = BreakRecord(
        start_time=break_start, end_time=break_end, duration=duration, type=data.type
    )
    updated = session.model_copy(update={"breaks": session.breaks + (record,)})
    event = BreakAdded(
        session_id=session.id, occurred_at=now, break_type=data.type.value, duration=duration
    )
    return Transition(updated, (event,))


def update_details(
    session: StudySessionSnapshot,
    now: datetime,
    changes: Union[SessionDetailsUpdate, dict[str, Any]],
) -> Transition:
    """Edit descriptive fields of a session that hasn't finished yet."""
    _require(session, "update")
    changes = coerce(SessionDetailsUpdate, changes)
    _check_notes(changes.notes)

    update: dict[str, Any] = {}
    for name in changes.model_fields_set:
        value = getattr(changes, name)
        if name == "focus_metrics" and value is not None:
            merged = session.focus_metrics.model_dump()
            merged.update(value.model_dump(exclude_unset=True))
            value = FocusMetrics(**merged)
        elif name == "productivity" and value is None:
            value = Productivity()
        elif name == "focus_metrics":
            value = FocusMetrics()
        elif name == "tags":
            value = tuple(value or ())
        update[name] = value

    updated = session.model_copy(update=update)
    event = SessionDetailsUpdated(
        session_id=session.id,
        occurred_at=ensure_utc(now),
        fields=tuple(sorted(update)),
    )
    return Transition(updated, (event,))
