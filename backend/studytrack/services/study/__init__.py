"""
Study Tracking Services

Services for the study-session lifecycle and the statistics derived from
completed sessions.

Modules:
- session_store: Optimistic, versioned persistence of session snapshots
- session_service: Session lifecycle orchestration
- streak_tracking: Study streaks and milestones
- statistics: Read-only rollups (overview, daily, per type, per topic)
- progress_sync: Applies completions to user/topic aggregates; reconciliation

Usage:
    from studytrack.services.study import (
        SessionLifecycleService,
        StatisticsService,
        StreakTrackingService,
        ProgressSynchronizer,
    )
"""

from studytrack.services.study.progress_sync import ProgressSynchronizer, SyncResult
from studytrack.services.study.session_service import SessionLifecycleService
from studytrack.services.study.session_store import SessionStore
from studytrack.services.study.statistics import StatisticsService
from studytrack.services.study.streak_tracking import StreakTrackingService

__all__ = [
    "ProgressSynchronizer",
    "SessionLifecycleService",
    "SessionStore",
    "StatisticsService",
    "StreakTrackingService",
    "SyncResult",
]
