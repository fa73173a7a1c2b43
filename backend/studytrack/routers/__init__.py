"""API Routers package."""

from studytrack.routers import analytics as analytics_router
from studytrack.routers import health as health_router
from studytrack.routers import sessions as sessions_router

__all__ = ["analytics_router", "health_router", "sessions_router"]
