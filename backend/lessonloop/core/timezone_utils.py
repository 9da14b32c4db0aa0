"""
Timezone utilities for LessonLoop.

Lesson times are stored in UTC. Slot start times and availability windows are
wall-clock values in the teacher's timezone and are localized on demand.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from .config import settings


def get_timezone(name: Optional[str]) -> pytz.BaseTzInfo:
    """
    Resolve a timezone name, falling back to the configured default.

    Args:
        name: IANA timezone name (may be None)

    Returns:
        pytz timezone object

    Raises:
        pytz.UnknownTimeZoneError: If the name is not a known timezone
    """
    return pytz.timezone(name or settings.default_timezone)


def is_valid_timezone(name: str) -> bool:
    return name in pytz.all_timezones_set


def ensure_utc(dt: datetime) -> datetime:
    """
    Return ``dt`` as an aware UTC datetime.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on read).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def localize_wall_clock(local_date: date, wall_time: time, tz_name: Optional[str]) -> datetime:
    """
    Combine a local date and wall-clock time in ``tz_name`` and return UTC.

    Daylight-saving policy:
    - ambiguous times (fall back) resolve to the first instant (DST side)
    - non-existent times (spring forward gap) shift forward by the gap,
      e.g. 02:30 on a spring-forward night becomes 03:30 local

    Returns:
        Aware UTC datetime
    """
    tz = get_timezone(tz_name)
    naive = datetime.combine(local_date, wall_time)
    try:
        localized = tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        localized = tz.localize(naive, is_dst=True)
    except pytz.NonExistentTimeError:
        localized = tz.normalize(tz.localize(naive, is_dst=False))
    return localized.astimezone(timezone.utc)


def convert_to_timezone(dt: datetime, tz_name: Optional[str]) -> datetime:
    """
    Convert a (UTC) datetime to the wall clock of ``tz_name``.

    Args:
        dt: Datetime to convert; naive values are treated as UTC
        tz_name: Target timezone name

    Returns:
        Aware datetime in the target timezone
    """
    return ensure_utc(dt).astimezone(get_timezone(tz_name))


def local_today(now: datetime, tz_name: Optional[str]) -> date:
    """'Today' in ``tz_name`` for the instant ``now``."""
    return convert_to_timezone(now, tz_name).date()
