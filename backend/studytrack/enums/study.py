"""
Study Tracking Enums

Defines enums for the study-session lifecycle, topic progress tracking,
and analytics query parameters.
"""

from enum import Enum


class SessionStatus(str, Enum):
    """
    Study session lifecycle states.

    State transitions:
    - PLANNED → ACTIVE (start)
    - ACTIVE → PAUSED (pause), PAUSED → ACTIVE (resume)
    - PLANNED/ACTIVE/PAUSED → COMPLETED (complete) or CANCELLED (cancel)

    COMPLETED and CANCELLED are terminal.
    """

    PLANNED = "planned"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SessionType(str, Enum):
    """
    Kinds of timed study intervals.
    """

    POMODORO = "pomodoro"  # Fixed-length focus block
    FOCUSED = "focused"  # Open-ended deep work (default)
    BREAK = "break"  # Recorded rest interval
    REVIEW = "review"  # Revision of previously studied material


class BreakType(str, Enum):
    """Break kinds recorded inside a session."""

    SHORT = "short"
    LONG = "long"
    MEAL = "meal"


class StudyLocation(str, Enum):
    """Where a session took place."""

    HOME = "home"
    OFFICE = "office"
    LIBRARY = "library"
    CAFE = "cafe"
    OTHER = "other"


class Distraction(str, Enum):
    """Distraction sources a learner can report."""

    PHONE = "phone"
    SOCIAL_MEDIA = "social-media"
    NOISE = "noise"
    FATIGUE = "fatigue"
    HUNGER = "hunger"
    OTHER = "other"


class StudyTool(str, Enum):
    """Tools used during a session."""

    COMPUTER = "computer"
    BOOKS = "books"
    VIDEOS = "videos"
    ONLINE_COURSE = "online-course"
    DOCUMENTATION = "documentation"
    PRACTICE_PLATFORM = "practice-platform"


class ProgressStatus(str, Enum):
    """
    Per-topic progress status for a user.

    Records start at NOT_STARTED, move to IN_PROGRESS on the first studied
    session and reach COMPLETED once progress hits 100.
    """

    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"


class TopicDifficulty(str, Enum):
    """Catalog difficulty levels."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


class TimePeriod(str, Enum):
    """
    Time periods for analytics queries.

    Used by the analytics overview to specify the trailing window for
    session rollups.
    """

    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"
    ALL = "all"
