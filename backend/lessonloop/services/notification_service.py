# backend/lessonloop/services/notification_service.py
"""
Notification Service for LessonLoop

Fire-and-forget email notifications for slot and billing events. Every
public method swallows and logs delivery failures: a notification problem
never fails or rolls back the business operation that triggered it, so
callers invoke these only after their transaction has committed.
"""

from datetime import date, datetime
import logging
from typing import Any, Mapping, Optional, Protocol, Sequence

from ..core.config import settings
from ..core.timezone_utils import convert_to_timezone
from ..domain.occurrences import day_name
from ..models.billing import MonthlyBilling
from ..models.recurring_slot import RecurringSlot, SlotSubscription
from ..models.student import StudentProfile
from ..models.teacher import TeacherProfile
from .template_registry import TemplateRegistry
from .template_service import currency

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    def send_template(
        self,
        to_email: str,
        template_name: TemplateRegistry,
        context: Mapping[str, Any],
        *,
        tags: Optional[Sequence[str]] = None,
    ) -> bool: ...


def _rate_description(subscription: Optional[SlotSubscription]) -> str:
    if subscription is None:
        return "no active rate"
    if subscription.monthly_rate is not None:
        return f"{currency(subscription.monthly_rate)} per month"
    return f"{currency(subscription.per_lesson_rate)} per lesson"


class NotificationService:
    """Sends slot and billing emails through an injected email service."""

    def __init__(self, email_service: EmailSender):
        self.email_service = email_service
        self.logger = logging.getLogger(self.__class__.__name__)

    def _send(
        self, to_email: Optional[str], template: TemplateRegistry, context: Mapping[str, Any], tag: str
    ) -> bool:
        if not to_email:
            self.logger.warning("Skipping %s notification: no recipient address", template.name)
            return False
        try:
            return bool(self.email_service.send_template(to_email, template, context, tags=[tag]))
        except Exception as exc:
            self.logger.error(
                "Failed to send %s to %s: %s",
                template.name,
                to_email,
                exc,
                exc_info=True,
                extra={"template": template.value},
            )
            return False

    def _slot_context(
        self, slot: RecurringSlot, teacher: TeacherProfile, student: StudentProfile
    ) -> dict[str, Any]:
        return {
            "teacher_name": teacher.name,
            "student_name": student.name,
            "day_name": day_name(slot.day_of_week),
            "start_time": slot.start_time,
            "duration_minutes": slot.duration_minutes,
            "timezone": slot.timezone,
        }

    def send_slot_booked(
        self,
        slot: RecurringSlot,
        subscription: SlotSubscription,
        teacher: TeacherProfile,
        student: StudentProfile,
        *,
        lessons_created: int,
        first_lesson: Optional[datetime],
    ) -> None:
        context = self._slot_context(slot, teacher, student)
        first_local = convert_to_timezone(first_lesson, slot.timezone) if first_lesson else None
        self._send(
            student.email,
            TemplateRegistry.SLOT_BOOKED_STUDENT,
            {
                **context,
                "start_month": subscription.start_month,
                "rate_description": _rate_description(subscription),
                "first_lesson": first_local,
            },
            "slots",
        )
        self._send(
            teacher.email,
            TemplateRegistry.SLOT_BOOKED_TEACHER,
            {**context, "lessons_created": lessons_created},
            "slots",
        )

    def send_slot_cancelled(
        self,
        slot: RecurringSlot,
        teacher: TeacherProfile,
        student: StudentProfile,
        *,
        effective_date: date,
        lessons_cancelled: int,
    ) -> None:
        context = {
            **self._slot_context(slot, teacher, student),
            "effective_date": effective_date,
            "lessons_cancelled": lessons_cancelled,
        }
        for recipient in (student, teacher):
            self._send(
                recipient.email,
                TemplateRegistry.SLOT_CANCELLED,
                {**context, "recipient_name": recipient.name},
                "slots",
            )

    def send_slot_suspended(
        self,
        slot: RecurringSlot,
        teacher: TeacherProfile,
        student: StudentProfile,
        *,
        lessons_cancelled: int,
    ) -> None:
        context = {**self._slot_context(slot, teacher, student), "lessons_cancelled": lessons_cancelled}
        for recipient in (student, teacher):
            self._send(
                recipient.email,
                TemplateRegistry.SLOT_SUSPENDED,
                {**context, "recipient_name": recipient.name},
                "slots",
            )

    def send_billing_invoice(self, billing: MonthlyBilling, student: StudentProfile) -> None:
        self._send(
            student.email,
            TemplateRegistry.BILLING_INVOICE,
            {
                "student_name": student.name,
                "month": billing.month,
                "expected_lessons": billing.expected_lessons,
                "total_amount": billing.total_amount,
                "due_days": settings.billing_due_days,
            },
            "billing",
        )

    def send_billing_overdue(
        self, billing: MonthlyBilling, student: StudentProfile, teacher: TeacherProfile
    ) -> None:
        self._send(
            student.email,
            TemplateRegistry.BILLING_OVERDUE,
            {
                "student_name": student.name,
                "teacher_name": teacher.name,
                "month": billing.month,
                "total_amount": billing.total_amount,
            },
            "billing",
        )
