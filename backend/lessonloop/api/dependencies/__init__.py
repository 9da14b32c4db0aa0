"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from ...core.clock import get_clock
from .database import get_db
from .services import (
    get_billing_service,
    get_conflict_checker,
    get_email_service,
    get_lesson_generator,
    get_lesson_service,
    get_notification_service,
    get_recurring_slot_service,
)

__all__ = [
    # Database
    "get_db",
    # Clock
    "get_clock",
    # Services
    "get_billing_service",
    "get_conflict_checker",
    "get_email_service",
    "get_lesson_generator",
    "get_lesson_service",
    "get_notification_service",
    "get_recurring_slot_service",
]
