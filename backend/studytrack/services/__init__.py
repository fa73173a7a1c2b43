"""Services package: study-session lifecycle, statistics and progress sync."""

from studytrack.services.study import (
    ProgressSynchronizer,
    SessionLifecycleService,
    StatisticsService,
    StreakTrackingService,
)

__all__ = [
    "ProgressSynchronizer",
    "SessionLifecycleService",
    "StatisticsService",
    "StreakTrackingService",
]
