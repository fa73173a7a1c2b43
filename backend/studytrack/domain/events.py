"""
Domain events emitted by study-session transitions.

Events are immutable records of something that already happened. The
lifecycle service logs each one after the transition is persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4


@dataclass(frozen=True)
class DomainEvent:
    """
    Base class for domain events.

    Subclasses are frozen dataclasses named in past tense.
    """

    session_id: Optional[int]
    occurred_at: datetime
    event_id: UUID = field(default_factory=uuid4)

    @property
    def event_type(self) -> str:
        """Return the event type name for serialization."""
        return self.__class__.__name__

    def to_dict(self) -> dict[str, object]:
        """Convert event to dictionary for serialization."""
        result: dict[str, object] = {}
        for key, value in self.__dict__.items():
            if isinstance(value, datetime):
                result[key] = value.astimezone(timezone.utc).isoformat()
            elif isinstance(value, UUID):
                result[key] = str(value)
            else:
                result[key] = value
        result["event_type"] = self.event_type
        return result


@dataclass(frozen=True)
class SessionPlanned(DomainEvent):
    user_id: int = 0
    topic_id: int = 0
    planned_duration: int = 0


@dataclass(frozen=True)
class SessionStarted(DomainEvent):
    pass


@dataclass(frozen=True)
class SessionPaused(DomainEvent):
    pass


@dataclass(frozen=True)
class SessionResumed(DomainEvent):
    pause_duration: int = 0


@dataclass(frozen=True)
class SessionCompleted(DomainEvent):
    user_id: int = 0
    topic_id: int = 0
    actual_duration: int = 0
    end_time: Optional[datetime] = None


@dataclass(frozen=True)
class SessionCancelled(DomainEvent):
    reason: Optional[str] = None


@dataclass(frozen=True)
class BreakAdded(DomainEvent):
    break_type: str = "short"
    duration: Optional[int] = None


@dataclass(frozen=True)
class SessionDetailsUpdated(DomainEvent):
    fields: tuple[str, ...] = ()
