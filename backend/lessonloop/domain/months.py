# backend/lessonloop/domain/months.py
"""
Helpers for ``YYYY-MM`` billing months.

Months are passed around as strings (the storage format) and converted to
``date`` objects (the first of the month) only for arithmetic.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
import re
from typing import List, Optional, Tuple

_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def validate_month(value: str) -> str:
    """Return ``value`` unchanged if it is a valid ``YYYY-MM`` month, else raise ValueError."""
    if not isinstance(value, str) or not _MONTH_RE.match(value):
        raise ValueError(f"Invalid month format (expected YYYY-MM): {value!r}")
    return value


def parse_month(value: str) -> date:
    """``"2024-02"`` -> ``date(2024, 2, 1)``."""
    year, month = validate_month(value).split("-")
    return date(int(year), int(month), 1)


def format_month(value: date | datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_of(value: date | datetime) -> str:
    """Billing month containing ``value``."""
    return format_month(value)


def add_months(month: str, count: int) -> str:
    first = parse_month(month)
    index = first.year * 12 + (first.month - 1) + count
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def month_bounds(month: str) -> Tuple[date, date]:
    """First and last calendar day of ``month`` (both inclusive)."""
    first = parse_month(month)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day)


def months_between(start_month: str, end_month: Optional[str] = None, *, default_span: int = 12) -> List[str]:
    """
    All months from ``start_month`` to ``end_month`` inclusive.

    Without an end month the range runs ``default_span`` months past the start.
    """
    if end_month is None:
        end_month = add_months(start_month, default_span)
    if end_month < start_month:
        return []
    months: List[str] = []
    current = start_month
    while current <= end_month:
        months.append(current)
        current = add_months(current, 1)
    return months


def month_in_range(month: str, start_month: str, end_month: Optional[str]) -> bool:
    """True when ``month`` falls in ``[start_month, end_month]`` (open-ended if end is None)."""
    if month < start_month:
        return False
    return end_month is None or month <= end_month
