"""
Study Sessions API Router

Endpoints for the study-session lifecycle and session statistics.

Endpoints:
- GET /api/sessions - List a user's sessions (filtered, paginated)
- GET /api/sessions/today - Today's session summary
- GET /api/sessions/active - The user's active or paused session
- GET /api/sessions/stats - Combined statistics for the sessions dashboard
- POST /api/sessions - Plan a new session
- PUT /api/sessions/{id}/start - Start a planned session
- PUT /api/sessions/{id}/pause - Pause an active session
- PUT /api/sessions/{id}/resume - Resume a paused session
- PUT /api/sessions/{id}/complete - Complete a session and sync progress
- PUT /api/sessions/{id}/cancel - Cancel a session
- POST /api/sessions/{id}/break - Record a break
- GET /api/sessions/{id} - Get a session
- PUT /api/sessions/{id} - Edit session details
- DELETE /api/sessions/{id} - Delete a planned or cancelled session
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from studytrack.dependencies import (
    get_session_service,
    get_statistics_service,
    get_streak_service,
)
from studytrack.domain.sessions import (
    BreakData,
    SessionCompletionData,
    SessionDetailsUpdate,
    StudySessionSnapshot,
    coerce,
)
from studytrack.enums.study import SessionStatus, SessionType
from studytrack.middleware.error_handling import ErrorResponse, handle_endpoint_errors
from studytrack.models.base import SuccessResponse
from studytrack.models.study import (
    DateRange,
    SessionCancelRequest,
    SessionCompletionResponse,
    SessionCreateRequest,
    SessionListResponse,
    SessionResponse,
    SessionResumeRequest,
    SessionStatsResponse,
    TodaySummary,
)
from studytrack.services.study import (
    SessionLifecycleService,
    StatisticsService,
    StreakTrackingService,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/sessions",
    tags=["sessions"],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)


def _to_response(session: StudySessionSnapshot) -> SessionResponse:
    return SessionResponse.model_validate(session)


# ===========================================
# Collection Endpoints
# ===========================================


@router.get("", response_model=SessionListResponse)
@handle_endpoint_errors("List sessions")
async def list_sessions(
    user_id: int = Query(..., description="Owner of the sessions"),
    session_status: Optional[SessionStatus] = Query(None, alias="status"),
    topic_id: Optional[int] = Query(None),
    session_type: Optional[SessionType] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionListResponse:
    """List a user's sessions, newest first."""
    sessions, total = await service.list_sessions(
        user_id,
        status=session_status,
        topic_id=topic_id,
        session_type=session_type,
        page=page,
        page_size=page_size,
    )
    return SessionListResponse(
        items=[_to_response(s) for s in sessions],
        total=total,
        page=page,
        page_size=page_size,
        has_more=page * page_size < total,
    )


@router.get("/today", response_model=TodaySummary)
@handle_endpoint_errors("Get today's sessions")
async def get_today_summary(
    user_id: int = Query(...),
    statistics: StatisticsService = Depends(get_statistics_service),
) -> TodaySummary:
    """Summary of sessions started today, in any status."""
    return await statistics.get_today_summary(user_id)


@router.get("/active", response_model=Optional[SessionResponse])
@handle_endpoint_errors("Get active session")
async def get_active_session(
    user_id: int = Query(...),
    service: SessionLifecycleService = Depends(get_session_service),
) -> Optional[SessionResponse]:
    """The user's active or paused session, or null."""
    session = await service.get_active_session(user_id)
    return _to_response(session) if session else None


@router.get("/stats", response_model=SessionStatsResponse)
@handle_endpoint_errors("Get session stats")
async def get_session_stats(
    user_id: int = Query(...),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    days: Optional[int] = Query(None, description="Trailing days for daily stats"),
    statistics: StatisticsService = Depends(get_statistics_service),
    streaks: StreakTrackingService = Depends(get_streak_service),
) -> SessionStatsResponse:
    """
    Combined statistics for the sessions dashboard.

    Returns:
    - Overview totals and averages
    - Current/longest streak
    - Daily buckets
    - Breakdown per session type
    - Top topics by time
    """
    date_range = coerce(DateRange, {"start_date": start_date, "end_date": end_date})
    return SessionStatsResponse(
        overview=await statistics.get_user_stats(user_id, date_range),
        streaks=await streaks.get_streak_data(user_id),
        daily_stats=await statistics.get_daily_stats(user_id, days),
        type_breakdown=await statistics.get_type_breakdown(user_id, date_range),
        top_topics=await statistics.get_top_topics(user_id, date_range),
    )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
@handle_endpoint_errors("Create session")
async def create_session(
    request: SessionCreateRequest,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    """Plan a new study session."""
    session = await service.create_session(
        user_id=request.user_id,
        topic_id=request.topic_id,
        planned_duration=request.planned_duration,
        session_type=request.session_type,
        notes=request.notes,
        environment=request.environment,
        tags=request.tags,
    )
    return _to_response(session)


# ===========================================
# Lifecycle Endpoints
# ===========================================


@router.put("/{session_id}/start", response_model=SessionResponse)
@handle_endpoint_errors("Start session")
async def start_session(
    session_id: int,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    """Start a planned session; start_time is reset to now."""
    return _to_response(await service.start_session(session_id))


@router.put("/{session_id}/pause", response_model=SessionResponse)
@handle_endpoint_errors("Pause session")
async def pause_session(
    session_id: int,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    return _to_response(await service.pause_session(session_id))


@router.put("/{session_id}/resume", response_model=SessionResponse)
@handle_endpoint_errors("Resume session")
async def resume_session(
    session_id: int,
    request: Optional[SessionResumeRequest] = None,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    """Resume a paused session, adding the reported pause length."""
    pause_duration = request.pause_duration if request else 0
    return _to_response(await service.resume_session(session_id, pause_duration))


@router.put("/{session_id}/complete", response_model=SessionCompletionResponse)
@handle_endpoint_errors("Complete session")
async def complete_session(
    session_id: int,
    request: Optional[SessionCompletionData] = None,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionCompletionResponse:
    """
    Complete a session.

    The user's statistics, topic progress and topic completion stats are
    updated afterwards. Failures there don't undo the completion; they are
    returned as warnings.
    """
    session, sync = await service.complete_session(session_id, request)
    return SessionCompletionResponse(
        session=_to_response(session),
        warnings=[w.message for w in sync.warnings] if sync else [],
        topic_completed=sync.topic_completed if sync else False,
        achievements_unlocked=sync.achievements_unlocked if sync else [],
    )


@router.put("/{session_id}/cancel", response_model=SessionResponse)
@handle_endpoint_errors("Cancel session")
async def cancel_session(
    session_id: int,
    request: Optional[SessionCancelRequest] = None,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    reason = request.reason if request else None
    return _to_response(await service.cancel_session(session_id, reason))


@router.post("/{session_id}/break", response_model=SessionResponse)
@handle_endpoint_errors("Add break")
async def add_break(
    session_id: int,
    request: Optional[BreakData] = None,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    """Record a break; start_time defaults to now."""
    return _to_response(await service.add_break(session_id, request))


# ===========================================
# Single Session Endpoints
# ===========================================


@router.get("/{session_id}", response_model=SessionResponse)
@handle_endpoint_errors("Get session")
async def get_session(
    session_id: int,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    return _to_response(await service.get_session(session_id))


@router.put("/{session_id}", response_model=SessionResponse)
@handle_endpoint_errors("Update session")
async def update_session(
    session_id: int,
    request: SessionDetailsUpdate,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SessionResponse:
    """Edit notes, productivity, environment, focus metrics or tags."""
    return _to_response(await service.update_session(session_id, request))


@router.delete("/{session_id}", response_model=SuccessResponse)
@handle_endpoint_errors("Delete session")
async def delete_session(
    session_id: int,
    service: SessionLifecycleService = Depends(get_session_service),
) -> SuccessResponse:
    """Delete a planned or cancelled session."""
    await service.delete_session(session_id)
    return SuccessResponse(message=f"Session {session_id} deleted")
