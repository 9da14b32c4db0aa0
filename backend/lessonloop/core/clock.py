"""Injected wall-clock.

Services never call ``datetime.now`` directly; they receive a ``Clock`` so
generation and billing stay deterministic under test.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency returning the production clock."""
    return utc_now
