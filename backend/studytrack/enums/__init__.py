"""
Centralized enum definitions for the application.

Usage:
    from studytrack.enums import SessionStatus, SessionType

    # Or import from the specific module
    from studytrack.enums.study import ProgressStatus
"""

from studytrack.enums.study import (
    BreakType,
    Distraction,
    ProgressStatus,
    SessionStatus,
    SessionType,
    StudyLocation,
    StudyTool,
    TimePeriod,
    TopicDifficulty,
)

__all__ = [
    "BreakType",
    "Distraction",
    "ProgressStatus",
    "SessionStatus",
    "SessionType",
    "StudyLocation",
    "StudyTool",
    "TimePeriod",
    "TopicDifficulty",
]
