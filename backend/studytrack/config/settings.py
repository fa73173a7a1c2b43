"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from studytrack.config import settings

    # Access settings
    db_url = settings.DATABASE_URL
    tz = settings.STATS_TIMEZONE
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Study Tracker"
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    CREATE_TABLES_ON_STARTUP: bool = True

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "studytrack"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "studytrack"

    # Explicit override, e.g. "sqlite+aiosqlite:///./studytrack.db"
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Async database connection URL."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Study sessions
    MIN_PLANNED_DURATION_MINUTES: int = 1
    MAX_PLANNED_DURATION_MINUTES: int = 480
    MAX_SESSION_NOTES_LENGTH: int = 1000
    MAX_PROGRESS_NOTES_LENGTH: int = 2000

    # Statistics
    # Reference timezone for daily rollups. Streaks use each user's own timezone.
    STATS_TIMEZONE: str = "UTC"
    DEFAULT_USER_TIMEZONE: str = "UTC"
    DAILY_STATS_DEFAULT_DAYS: int = 30
    DAILY_STATS_MAX_DAYS: int = 365
    TOP_TOPICS_LIMIT: int = 10

    # Streak milestones (days) unlocking achievements
    STREAK_MILESTONES: list[int] = [3, 7, 14, 30, 60, 100, 365]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
