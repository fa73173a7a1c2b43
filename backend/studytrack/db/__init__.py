"""Database package."""

from studytrack.db.base import (
    Base,
    async_session_maker,
    build_engine,
    engine,
    get_db,
    get_session_maker,
    init_db,
)

__all__ = [
    "Base",
    "async_session_maker",
    "build_engine",
    "engine",
    "get_db",
    "get_session_maker",
    "init_db",
]
