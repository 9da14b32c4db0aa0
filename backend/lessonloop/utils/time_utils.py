from __future__ import annotations

from datetime import time
import re

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str, *, allow_end_of_day: bool = False) -> time:
    """
    Parse a zero-padded ``HH:MM`` wall-clock string.

    Args:
        value: String such as ``"16:30"``.
        allow_end_of_day: Accept ``"24:00"`` (returned as ``time(0, 0)``) for
            window end times.

    Raises:
        ValueError: If the string is not a valid time.
    """
    if allow_end_of_day and value == "24:00":
        return time(0, 0)
    match = _HHMM_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time format (expected HH:MM): {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def format_hhmm(t: time) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def time_to_minutes(t: time, *, is_end_time: bool = False) -> int:
    """
    Convert time to minutes since midnight.

    Args:
        t: Time object.
        is_end_time: If True, treat time(0, 0) as 1440 (end of day).

    Returns:
        Minutes since midnight (0-1440).
    """
    minutes = t.hour * 60 + t.minute
    if is_end_time and minutes == 0:
        return MINUTES_PER_DAY
    return minutes


def hhmm_to_minutes(value: str, *, is_end_time: bool = False) -> int:
    return time_to_minutes(parse_hhmm(value, allow_end_of_day=is_end_time), is_end_time=is_end_time)


def minutes_to_time_str(minutes: int) -> str:
    """
    Convert minutes since midnight to HH:MM.

    1440 is rendered as "24:00".
    """
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"minutes out of range: {minutes}")
    if minutes == MINUTES_PER_DAY:
        return "24:00"
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
