"""
Middleware Package

Provides FastAPI middleware and the service exception taxonomy.

Usage:
    from studytrack.middleware import setup_error_handling, ServiceError

    setup_error_handling(app, debug=settings.DEBUG)
"""

from studytrack.middleware.error_handling import (
    ConflictError,
    ConsistencyWarning,
    ErrorHandlingMiddleware,
    NotFoundError,
    ServiceError,
    StateTransitionError,
    ValidationError,
    handle_endpoint_errors,
    setup_error_handling,
)

__all__ = [
    "ConflictError",
    "ConsistencyWarning",
    "ErrorHandlingMiddleware",
    "NotFoundError",
    "ServiceError",
    "StateTransitionError",
    "ValidationError",
    "handle_endpoint_errors",
    "setup_error_handling",
]
