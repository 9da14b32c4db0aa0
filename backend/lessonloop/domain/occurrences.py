# backend/lessonloop/domain/occurrences.py
"""
Occurrence calculator for weekly recurring slots.

A slot is a pattern (day of week, wall-clock start, duration, timezone). This
module turns patterns into concrete UTC start times and counts how often a
weekday falls in a billing month.

Day-of-week values follow the stored convention ``0 = Sunday ... 6 = Saturday``.
Python's ``date.weekday()`` (``0 = Monday``) is translated here and nowhere else.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple, Union

from ..core.timezone_utils import convert_to_timezone, localize_wall_clock
from ..utils.time_utils import parse_hhmm
from .months import parse_month

ALLOWED_DURATIONS = (30, 60)
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

DateLike = Union[date, datetime]


def validate_day_of_week(day_of_week: int) -> int:
    if not isinstance(day_of_week, int) or isinstance(day_of_week, bool) or not 0 <= day_of_week <= 6:
        raise ValueError(f"day_of_week must be an integer 0-6 (0 = Sunday), got {day_of_week!r}")
    return day_of_week


def validate_duration(duration_minutes: int) -> int:
    if duration_minutes not in ALLOWED_DURATIONS:
        raise ValueError(f"duration_minutes must be one of {ALLOWED_DURATIONS}, got {duration_minutes!r}")
    return duration_minutes


def to_python_weekday(day_of_week: int) -> int:
    """0=Sunday convention -> ``date.weekday()`` convention."""
    return (validate_day_of_week(day_of_week) - 1) % 7


def day_of_week_for(value: date) -> int:
    """``date`` -> 0=Sunday convention."""
    return (value.weekday() + 1) % 7


def day_name(day_of_week: int) -> str:
    return DAY_NAMES[validate_day_of_week(day_of_week)]


def ranges_overlap(a: object, b: object, c: object, d: object) -> bool:
    """Half-open ranges ``[a, b)`` and ``[c, d)`` overlap iff ``a < d and c < b``."""
    return a < d and c < b  # type: ignore[operator]


def _as_local_date(value: DateLike, tz_name: Optional[str]) -> date:
    if isinstance(value, datetime):
        return convert_to_timezone(value, tz_name).date()
    return value


def _as_time(start_time: Union[str, time]) -> time:
    return parse_hhmm(start_time) if isinstance(start_time, str) else start_time


def occurrence_dates(day_of_week: int, range_start: date, range_end: date) -> List[date]:
    """Every date in ``[range_start, range_end]`` falling on ``day_of_week``."""
    if range_end < range_start:
        return []
    offset = (to_python_weekday(day_of_week) - range_start.weekday()) % 7
    current = range_start + timedelta(days=offset)
    dates: List[date] = []
    while current <= range_end:
        dates.append(current)
        current += timedelta(days=7)
    return dates


def occurrences_in_range(
    day_of_week: int,
    start_time: Union[str, time],
    duration_minutes: int,
    range_start: DateLike,
    range_end: DateLike,
    timezone: Optional[str],
) -> List[datetime]:
    """
    Concrete UTC start datetimes of a weekly pattern within a date range.

    Args:
        day_of_week: 0 = Sunday ... 6 = Saturday
        start_time: Wall-clock start in ``timezone`` (``"HH:MM"`` or ``time``)
        duration_minutes: Lesson length; validated, not used for the start times
        range_start: First local date considered (inclusive). Datetimes are
            converted to their local date in ``timezone``.
        range_end: Last local date considered (inclusive)
        timezone: IANA timezone the wall-clock time is interpreted in

    Returns:
        Aware UTC datetimes in chronological order.
    """
    validate_duration(duration_minutes)
    wall_time = _as_time(start_time)
    start = _as_local_date(range_start, timezone)
    end = _as_local_date(range_end, timezone)
    return [
        localize_wall_clock(local_date, wall_time, timezone)
        for local_date in occurrence_dates(day_of_week, start, end)
    ]


def occurrence_ranges(
    day_of_week: int,
    start_time: Union[str, time],
    duration_minutes: int,
    range_start: DateLike,
    range_end: DateLike,
    timezone: Optional[str],
) -> List[Tuple[datetime, datetime]]:
    """Same as :func:`occurrences_in_range` but returns ``(start, end)`` UTC pairs."""
    length = timedelta(minutes=duration_minutes)
    return [
        (start, start + length)
        for start in occurrences_in_range(
            day_of_week, start_time, duration_minutes, range_start, range_end, timezone
        )
    ]


def next_occurrence(
    day_of_week: int,
    start_time: Union[str, time],
    duration_minutes: int,
    on_or_after: datetime,
    timezone: Optional[str],
) -> datetime:
    """First occurrence starting at or after the instant ``on_or_after``."""
    local_start = _as_local_date(on_or_after, timezone)
    for candidate in occurrences_in_range(
        day_of_week, start_time, duration_minutes, local_start, local_start + timedelta(days=7), timezone
    ):
        if candidate >= on_or_after:
            return candidate
    # Unreachable for a weekly pattern over an 8-day window
    raise ValueError("No occurrence found")


def occurrence_count_in_month(day_of_week: int, month: str) -> int:
    """
    How many times ``day_of_week`` falls in the ``YYYY-MM`` month (4 or 5).

    Computed from the month's first weekday and length on every call.
    """
    first = parse_month(month)
    days_in_month = calendar.monthrange(first.year, first.month)[1]
    first_match = 1 + (to_python_weekday(day_of_week) - first.weekday()) % 7
    return (days_in_month - first_match) // 7 + 1
