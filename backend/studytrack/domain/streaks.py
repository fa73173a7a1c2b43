"""
Streak calculation - pure functions, no DB access.

A streak is a run of consecutive calendar days that each contain at least
one completed session. Days are computed in the user's timezone before any
comparison, so sessions either side of a DST change still land on adjacent
dates.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from studytrack.domain.temporal import calendar_day


@dataclass(frozen=True)
class StreakResult:
    """Current and longest streak over a study-day history."""

    current: int
    longest: int
    streak_start: Optional[date] = None  # First day of the current streak
    last_study_day: Optional[date] = None


def study_days(timestamps: Iterable[datetime], tz: ZoneInfo) -> list[date]:
    """Truncate timestamps to calendar days in `tz`, deduplicated and ascending."""
    return sorted({calendar_day(ts, tz) for ts in timestamps})


def calculate_streaks(days: Iterable[date], today: date) -> StreakResult:
    """
    Scan study days and return current/longest streak.

    A run extends while consecutive days differ by exactly one. The trailing
    run only counts as the current streak when its last day is today or
    yesterday; otherwise the current streak is 0.

    Args:
        days: Study days in any order; duplicates are ignored.
        today: Reference date for deciding whether the streak is alive.

    Returns:
        StreakResult. No days yields (0, 0).
    """
    ordered = sorted(set(days))
    if not ordered:
        return StreakResult(current=0, longest=0)

    longest = 1
    run = 1
    run_start = ordered[0]

    for previous, day in zip(ordered, ordered[1:]):
        if day - previous == timedelta(days=1):
            run += 1
        else:
            run = 1
            run_start = day
        longest = max(longest, run)

    last_day = ordered[-1]
    if (today - last_day).days <= 1:
        return StreakResult(
            current=run, longest=longest, streak_start=run_start, last_study_day=last_day
        )
    return StreakResult(current=0, longest=longest, last_study_day=last_day)


def count_days_in_period(days: Iterable[date], today: date, period_days: int) -> int:
    """Unique study days within the last `period_days` days up to `today`."""
    cutoff = today - timedelta(days=period_days)
    return len({d for d in days if cutoff <= d <= today})


def milestones_reached(longest: int, milestones: Iterable[int]) -> list[int]:
    """Milestones (in days) covered by the longest streak."""
    return [m for m in sorted(milestones) if longest >= m]


def next_milestone(current: int, milestones: Iterable[int]) -> Optional[int]:
    """The smallest milestone the current streak hasn't reached yet."""
    return next((m for m in sorted(milestones) if m > current), None)
