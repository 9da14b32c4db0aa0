# backend/lessonloop/tasks/scheduling_tasks.py
"""
Periodic scheduling and billing tasks.

Each task opens a short-lived session and calls the same service the HTTP
job endpoints use. Per-unit failures are already isolated by the services;
the task returns the run summary so it shows up in Flower and the result
backend.
"""

from dataclasses import asdict
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable, Dict, Optional, TypeVar, cast

from celery import shared_task

from lessonloop.core.config import settings
from lessonloop.database import get_db_session
from lessonloop.repositories import RepositoryFactory
from lessonloop.services.billing_service import BillingService
from lessonloop.services.email import EmailService
from lessonloop.services.email_console import ConsoleEmailService
from lessonloop.services.lesson_generator import LessonGenerator
from lessonloop.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

_TaskFunc = TypeVar("_TaskFunc", bound=Callable[..., Any])


def _typed_shared_task(*args: Any, **kwargs: Any) -> Callable[[_TaskFunc], _TaskFunc]:
    """Typed wrapper for Celery's shared_task decorator."""
    return cast(Callable[[_TaskFunc], _TaskFunc], shared_task(*args, **kwargs))


def _summary(result: Any) -> Dict[str, Any]:
    data = asdict(result)
    for key, value in data.items():
        if hasattr(value, "isoformat"):
            data[key] = value.isoformat()
    return data


def _notification_service(db: Any) -> NotificationService:
    if settings.email_provider == "resend":
        return NotificationService(EmailService(db))
    return NotificationService(ConsoleEmailService())


@_typed_shared_task(name=f"{__name__}.generate_future_lessons")
def generate_future_lessons(
    range_start: Optional[str] = None, range_end: Optional[str] = None
) -> Dict[str, Any]:
    """Extend the lesson horizon for every teacher with ACTIVE slots."""
    start = datetime.fromisoformat(range_start).date() if range_start else None
    end = datetime.fromisoformat(range_end).date() if range_end else None
    with get_db_session() as db:
        result = LessonGenerator(db).generate_future_lessons(start, end)
    if not result.success:
        logger.warning("[SCHEDULING] Lesson generation finished with %d errors", len(result.errors))
    return _summary(result)


@_typed_shared_task(name=f"{__name__}.generate_monthly_billing")
def generate_monthly_billing(month: Optional[str] = None) -> Dict[str, Any]:
    """Create PENDING billing for ``month`` (defaults to the current month)."""
    with get_db_session() as db:
        service = BillingService(db)
        result = service.generate_billing_for_month(month or service.current_month())
    if not result.success:
        logger.warning("[SCHEDULING] Billing for %s finished with %d errors", result.month, len(result.errors))
    return _summary(result)


@_typed_shared_task(name=f"{__name__}.mark_overdue_billings")
def mark_overdue_billings() -> Dict[str, Any]:
    with get_db_session() as db:
        service = BillingService(db, notification_service=_notification_service(db))
        result = service.mark_overdue_billings()
    return _summary(result)


@_typed_shared_task(name=f"{__name__}.cleanup_job_logs", ignore_result=True)
def cleanup_job_logs() -> int:
    """Purge job history older than ``job_log_retention_days``."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=settings.job_log_retention_days)
    with get_db_session() as db:
        deleted = RepositoryFactory.create_job_log_repository(db).delete_older_than(cutoff)
    if deleted:
        logger.info("[SCHEDULING] Purged %d job log entries older than %s", deleted, cutoff.date())
    return deleted
