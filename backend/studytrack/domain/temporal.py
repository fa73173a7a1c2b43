"""
Temporal utilities shared by the session lifecycle, streaks and rollups.

All timestamps are handled as timezone-aware UTC datetimes. Calendar-day
questions ("which day was this?", "is that yesterday?") are answered in a
named IANA timezone so that DST shifts never change the result: two
timestamps are compared by their local calendar date, never by elapsed hours.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from studytrack.enums.study import TimePeriod


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """
    Clock frozen at a given instant.

    Used for deterministic tests and for replaying historical data.
    `advance()` moves it forward.
    """

    def __init__(self, instant: datetime):
        self._now = ensure_utc(instant)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are taken to already be UTC (SQLite returns stored
    timestamps without tzinfo).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_timezone(name: Optional[str], fallback: str = "UTC") -> ZoneInfo:
    """Return the ZoneInfo for `name`, or `fallback` when it is unknown."""
    try:
        return ZoneInfo(name or fallback)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(fallback)


def calendar_day(value: datetime, tz: ZoneInfo) -> date:
    """Truncate an instant to its calendar date in `tz`."""
    return ensure_utc(value).astimezone(tz).date()


def today_in(tz: ZoneInfo, clock: Clock) -> date:
    """Today's date in `tz` according to `clock`."""
    return calendar_day(clock.now(), tz)


def start_of_day(day: date, tz: ZoneInfo) -> datetime:
    """Midnight of `day` in `tz`, as an aware UTC datetime."""
    local_midnight = datetime(day.year, day.month, day.day, tzinfo=tz)
    return local_midnight.astimezone(timezone.utc)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """
    Wall-clock minutes between two instants, rounded to the nearest minute.

    Halves round up.
    """
    seconds = (ensure_utc(end) - ensure_utc(start)).total_seconds()
    return math.floor(seconds / 60 + 0.5)


def period_start(period: TimePeriod, end: datetime) -> Optional[datetime]:
    """
    Start of a trailing analytics window ending at `end`.

    Returns None for TimePeriod.ALL (unbounded).
    """
    period_map = {
        TimePeriod.WEEK: timedelta(days=7),
        TimePeriod.MONTH: timedelta(days=30),
        TimePeriod.QUARTER: timedelta(days=90),
        TimePeriod.YEAR: timedelta(days=365),
    }
    delta = period_map.get(period)
    if delta is None:
        return None
    return ensure_utc(end) - delta
