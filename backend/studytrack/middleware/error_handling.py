"""
Error Handling

Provides consistent, informative error responses across the API and the
exception taxonomy used by the study-tracking services.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses (hides internal details in production)
- Custom exception classes for different error types

Usage:
    from studytrack.middleware.error_handling import (
        ErrorHandlingMiddleware,
        StateTransitionError,
    )

    # Add middleware to app
    app.add_middleware(ErrorHandlingMiddleware)

    # Raise custom exceptions
    raise StateTransitionError("Can only pause active sessions")

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: Custom exceptions → structured JSON response
    - Exception: Catch-all for unexpected errors → sanitized response

ConsistencyWarning is never raised. The progress synchronizer creates one
for each downstream rollup it had to skip, logs it, and reports it in its
result while the session completion itself stays committed.
"""

import functools
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str  # Error code (e.g., "state_transition_error")
    message: str  # Human-readable message
    error_id: str  # For log correlation
    details: Optional[dict] = None  # Additional context (sanitized)
    timestamp: datetime


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ValidationError(ServiceError):
    """
    Data validation error.

    Raised when a field is outside its declared range or enum. Always
    raised before anything is persisted.
    """

    status_code = 422
    error_code = "validation_error"


class StateTransitionError(ServiceError):
    """
    Illegal study-session lifecycle move.

    The session is left unchanged. Details carry the session id, the
    status the session was in and the attempted action so callers can tell
    this apart from a validation failure.
    """

    status_code = 409
    error_code = "state_transition_error"

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        action: Optional[str] = None,
        session_id: Optional[int] = None,
    ):
        details = {
            "current_status": current_status,
            "action": action,
            "session_id": session_id,
        }
        super().__init__(message, details=details)
        self.current_status = current_status
        self.action = action
        self.session_id = session_id


class NotFoundError(ServiceError):
    """
    Resource not found error.

    Raised when a referenced session, user or topic doesn't exist.
    """

    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """
    Request conflicts with current state.

    Raised when a user tries to open a second session while one is still
    active or paused.
    """

    status_code = 409
    error_code = "conflict"


class ConsistencyWarning(ServiceError):
    """
    Non-fatal failure of a downstream rollup.

    Example: the topic referenced by a completed session was deleted, so
    its completion stats could not be updated.
    """

    status_code = 200
    error_code = "consistency_warning"


# =============================================================================
# Error Handling Middleware
# =============================================================================


def _error_body(
    error_code: str,
    message: str,
    error_id: str,
    details: Optional[dict] = None,
) -> dict[str, Any]:
    return {
        "error": error_code,
        "message": message,
        "error_id": error_id,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details in production
    """

    def __init__(self, app, debug: bool = False):
        """
        Initialize middleware.

        Args:
            app: FastAPI/Starlette application
            debug: Whether to include stack traces in responses
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            response = await call_next(request)
            return response

        except HTTPException:
            # Let FastAPI handle HTTP exceptions
            raise

        except ServiceError as e:
            logger.error(
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                    "details": e.details,
                },
            )
            return JSONResponse(
                status_code=e.status_code,
                content=_error_body(
                    e.error_code,
                    e.message,
                    error_id,
                    e.details if self.debug else None,
                ),
            )

        except Exception as e:
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )

            details = None
            if self.debug:
                details = {
                    "exception": type(e).__name__,
                    "message": str(e),
                    "traceback": traceback.format_exc(),
                }
            return JSONResponse(
                status_code=500,
                content=_error_body(
                    "internal_server_error",
                    "An unexpected error occurred",
                    error_id,
                    details,
                ),
            )


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Registers the middleware and an exception handler so ServiceErrors
    raised inside route handlers get the same response shape.

    Args:
        app: FastAPI application instance
        debug: Whether to include details in responses
    """
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)

    @app.exception_handler(ServiceError)
    async def _service_error_handler(request: Request, exc: ServiceError):
        error_id = str(uuid4())[:8]
        logger.warning(f"[{error_id}] {exc.error_code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error_code, exc.message, error_id, exc.details),
        )

    logger.info(f"Error handling middleware enabled (debug={debug})")


# =============================================================================
# Helper Functions
# =============================================================================


def create_error_response(
    error_code: str,
    message: str,
    status_code: int = 500,
    details: Optional[dict] = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error_code: Error code for categorization
        message: Human-readable error message
        status_code: HTTP status code
        details: Optional additional details

    Returns:
        JSONResponse with standardized error format
    """
    error_id = str(uuid4())[:8]
    return JSONResponse(
        status_code=status_code,
        content=_error_body(error_code, message, error_id, details),
    )


def handle_endpoint_errors(operation: str) -> Callable:
    """
    Decorator translating service errors raised by a route handler.

    ServiceErrors become HTTPExceptions with the service's status code and a
    structured detail payload. Anything else is logged and re-raised for the
    middleware.

    Args:
        operation: Human-readable name of the endpoint used in log lines.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except ServiceError as e:
                logger.info(f"{operation} failed: {e.error_code}: {e.message}")
                raise HTTPException(
                    status_code=e.status_code,
                    detail={
                        "error": e.error_code,
                        "message": e.message,
                        "details": e.details,
                    },
                ) from e
            except Exception:
                logger.exception(f"{operation} failed unexpectedly")
                raise

        return wrapper

    return decorator
