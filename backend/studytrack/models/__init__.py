"""Pydantic models for the API."""

from studytrack.models.base import (
    PaginatedResponse,
    StrictRequest,
    StrictResponse,
    SuccessResponse,
)
from studytrack.models.study import (
    DailyStats,
    SessionCompletionResponse,
    SessionCreateRequest,
    SessionResponse,
    StreakData,
    UserStatsResponse,
)

__all__ = [
    "DailyStats",
    "PaginatedResponse",
    "SessionCompletionResponse",
    "SessionCreateRequest",
    "SessionResponse",
    "StreakData",
    "StrictRequest",
    "StrictResponse",
    "SuccessResponse",
    "UserStatsResponse",
]
