# backend/lessonloop/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Tests override
``get_db``, ``get_clock`` and ``get_email_service``.
"""

import logging
from typing import Union

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.clock import Clock, get_clock
from ...core.config import settings
from ...services.billing_service import BillingService
from ...services.conflict_checker import ConflictChecker
from ...services.email import EmailService
from ...services.email_console import ConsoleEmailService
from ...services.lesson_generator import LessonGenerator
from ...services.lesson_service import LessonService
from ...services.notification_service import NotificationService
from ...services.recurring_slot_service import RecurringSlotService
from .database import get_db

logger = logging.getLogger(__name__)

EmailProvider = Union[EmailService, ConsoleEmailService]


def get_email_service(db: Session = Depends(get_db)) -> EmailProvider:
    """Resend in deployed environments, console logging otherwise."""
    if settings.email_provider == "resend":
        return EmailService(db)
    return ConsoleEmailService()


def get_notification_service(
    email_service: EmailProvider = Depends(get_email_service),
) -> NotificationService:
    return NotificationService(email_service)


def get_conflict_checker(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ConflictChecker:
    return ConflictChecker(db, clock=clock)


def get_lesson_generator(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> LessonGenerator:
    return LessonGenerator(db, clock=clock)


def get_billing_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notification_service: NotificationService = Depends(get_notification_service),
) -> BillingService:
    return BillingService(db, clock=clock, notification_service=notification_service)


def get_recurring_slot_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notification_service: NotificationService = Depends(get_notification_service),
) -> RecurringSlotService:
    """
    Get recurring slot service with its collaborators.

    The conflict checker and generator share the request's session and clock.
    """
    return RecurringSlotService(
        db,
        clock=clock,
        conflict_checker=ConflictChecker(db, clock=clock),
        lesson_generator=LessonGenerator(db, clock=clock),
        notification_service=notification_service,
    )


def get_lesson_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    billing_service: BillingService = Depends(get_billing_service),
) -> LessonService:
    return LessonService(db, clock=clock, billing_service=billing_service)
