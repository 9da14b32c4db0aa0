# backend/lessonloop/services/recurring_slot_service.py
"""
Recurring Slot Manager for LessonLoop

Owns the lifecycle of a weekly recurring booking:

    PROPOSED -> ACTIVE -> {SUSPENDED, CANCELLED}
    SUSPENDED -> {ACTIVE, CANCELLED}
    CANCELLED is terminal

Booking creates the slot, its first subscription and the first weeks of
lessons in ONE transaction. Cancellation cancels future lessons, closes the
active subscription and cancels not-yet-invoiced billing; a slot that never
produced lessons or billing is deleted instead.

Emails go out only after the transaction commits and never fail the call.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import BillingModel, BookingReason, SlotStatus, SubscriptionStatus
from ..core.exceptions import (
    BookingConflictException,
    BusinessRuleException,
    IntegrityViolationException,
    InvalidStatusTransitionException,
    NotFoundException,
    RepositoryException,
    ServiceException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, local_today, localize_wall_clock
from ..database.session_utils import is_unique_violation
from ..domain.billing_math import RefundQuote, calculate_refund_amount, derive_slot_rates
from ..domain.months import add_months, format_month, month_bounds, month_of, validate_month
from ..models.lesson import Lesson
from ..models.recurring_slot import ACTIVE_SLOT_INDEX, RecurringSlot, SlotSubscription
from ..models.student import StudentProfile
from ..models.teacher import TeacherProfile
from ..repositories import RepositoryFactory
from ..repositories.lesson_repository import SUSPENSION_REASON
from .base import BaseService
from .conflict_checker import ConflictChecker, _validate_pattern
from .lesson_generator import LessonGenerator
from .notification_service import NotificationService

logger = logging.getLogger(__name__)

SLOT_CANCELLED_REASON = "slot_cancelled"


@dataclass
class BookingResult:
    slot: RecurringSlot
    subscription: SlotSubscription
    lessons: List[Lesson]


@dataclass
class CancellationResult:
    slot_id: str
    slots_deleted: int = 0
    slots_cancelled: int = 0
    lessons_cancelled: int = 0
    billing_records_cancelled: int = 0
    refund: Optional[RefundQuote] = None


@dataclass
class StatusChangeResult:
    slot: RecurringSlot
    lessons_affected: int = 0
    lessons_generated: int = 0


class RecurringSlotService(BaseService):
    """Booking, cancellation, suspension and rate changes for weekly slots."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        lesson_generator: Optional[LessonGenerator] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.billing_repository = RepositoryFactory.create_billing_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.student_repository = RepositoryFactory.create_student_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, clock=self.clock)
        self.lesson_generator = lesson_generator or LessonGenerator(db, clock=self.clock)
        self.notification_service = notification_service

    # Helpers

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _current_month(self) -> str:
        return format_month(self._now())

    def _get_slot(self, slot_id: str) -> RecurringSlot:
        slot = self.slot_repository.get_with_subscriptions(slot_id)
        if slot is None:
            raise NotFoundException(f"Slot {slot_id} not found", code="SLOT_NOT_FOUND")
        return slot

    def _get_parties(self, slot: RecurringSlot) -> tuple[Optional[TeacherProfile], Optional[StudentProfile]]:
        return (
            self.teacher_repository.get_by_id(slot.teacher_id),
            self.student_repository.get_by_id(slot.student_id),
        )

    def _transition(self, slot: RecurringSlot, target: SlotStatus) -> None:
        current = SlotStatus(slot.status)
        if not current.can_transition_to(target):
            raise InvalidStatusTransitionException("slot", current.value, target.value)
        slot.status = target.value

    def _transition_subscription(self, subscription: SlotSubscription, target: SubscriptionStatus) -> None:
        current = SubscriptionStatus(subscription.status)
        if not current.can_transition_to(target):
            raise InvalidStatusTransitionException("subscription", current.value, target.value)
        subscription.status = target.value

    def _resolve_rates(
        self,
        teacher_id: str,
        duration_minutes: int,
        monthly_rate: Optional[int],
        per_lesson_rate: Optional[int],
    ) -> tuple[Optional[int], Optional[int]]:
        if monthly_rate is not None and per_lesson_rate is not None:
            raise ValidationException(
                "Provide monthly_rate or per_lesson_rate, not both", code="INVALID_RATE"
            )
        for value in (monthly_rate, per_lesson_rate):
            if value is not None and value < 0:
                raise ValidationException("Rates must not be negative", code="INVALID_RATE")
        if monthly_rate is not None or per_lesson_rate is not None:
            return monthly_rate, per_lesson_rate

        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if lesson_settings is None:
            raise BusinessRuleException(
                "Teacher has no lesson pricing configured", code="PRICING_NOT_CONFIGURED"
            )
        return derive_slot_rates(
            lesson_settings.price_for(duration_minutes), BillingModel(lesson_settings.billing_model)
        )

    def _lookahead_range(self, first_day: date) -> tuple[date, date]:
        return first_day, first_day + timedelta(weeks=settings.booking_lookahead_weeks)

    # Booking

    @BaseService.measure_operation("book_recurring_slot")
    def book_recurring_slot(
        self,
        teacher_id: str,
        student_id: str,
        day_of_week: int,
        start_time: str,
        duration_minutes: int,
        start_month: Optional[str] = None,
        monthly_rate: Optional[int] = None,
        per_lesson_rate: Optional[int] = None,
        end_month: Optional[str] = None,
    ) -> BookingResult:
        """
        Book a weekly slot.

        ``end_month`` (inclusive) closes the subscription up front: no lessons
        are generated and no billing is created after it.

        Steps: validate input, verify teacher and student, verify the duration
        is offered, run the conflict checker, then create slot + subscription +
        first ``booking_lookahead_weeks`` of lessons in one transaction.

        Raises:
            ValidationException: Malformed pattern, rates or months
            NotFoundException: Unknown teacher or student
            BusinessRuleException: Duration not offered / student of another teacher
            BookingConflictException: Checker rejection or lost booking race
        """
        _validate_pattern(day_of_week, start_time, duration_minutes)
        current_month = self._current_month()
        if start_month is None:
            start_month = current_month
        try:
            validate_month(start_month)
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_MONTH") from exc
        if start_month < current_month:
            raise ValidationException(
                "start_month cannot be in the past", code="INVALID_MONTH", details={"start_month": start_month}
            )
        if end_month is not None:
            try:
                validate_month(end_month)
            except ValueError as exc:
                raise ValidationException(str(exc), code="INVALID_MONTH") from exc
            if end_month < start_month:
                raise ValidationException(
                    "end_month must not be before start_month",
                    code="INVALID_MONTH",
                    details={"start_month": start_month, "end_month": end_month},
                )

        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None or not teacher.is_active:
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")
        student = self.student_repository.get_by_id(student_id)
        if student is None or not student.is_active:
            raise NotFoundException(f"Student {student_id} not found", code="STUDENT_NOT_FOUND")
        if student.teacher_id and student.teacher_id != teacher_id:
            raise BusinessRuleException(
                "Student is not assigned to this teacher", code="STUDENT_NOT_ASSIGNED"
            )

        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        if lesson_settings is not None and not lesson_settings.offers_duration(duration_minutes):
            raise BusinessRuleException(
                f"Teacher does not offer {duration_minutes}-minute lessons",
                code="DURATION_NOT_OFFERED",
            )
        monthly, per_lesson = self._resolve_rates(
            teacher_id, duration_minutes, monthly_rate, per_lesson_rate
        )

        first_date: Optional[date] = None
        if start_month > current_month:
            first_date = month_bounds(start_month)[0]
        check = self.conflict_checker.can_book_recurring(
            teacher_id, day_of_week, start_time, duration_minutes, first_date=first_date
        )
        check.raise_if_rejected()

        now = self._now()
        range_start, range_end = self._lookahead_range(
            first_date or local_today(now, teacher.timezone)
        )
        try:
            with self.transaction():
                slot = self.slot_repository.create(
                    teacher_id=teacher_id,
                    student_id=student_id,
                    day_of_week=day_of_week,
                    start_time=start_time,
                    duration_minutes=duration_minutes,
                    timezone=teacher.timezone,
                    monthly_rate=monthly,
                    per_lesson_rate=per_lesson,
                    status=SlotStatus.ACTIVE.value,
                    booked_at=now,
                )
                subscription = self.subscription_repository.create(
                    slot_id=slot.id,
                    student_id=student_id,
                    start_month=start_month,
                    end_month=end_month,
                    monthly_rate=monthly,
                    per_lesson_rate=per_lesson,
                    status=SubscriptionStatus.ACTIVE.value,
                )
                self.db.refresh(slot, attribute_names=["subscriptions"])
                self.lesson_generator.generate_lessons(
                    slot_id=slot.id, range_start=range_start, range_end=range_end
                )
        except IntegrityViolationException as exc:
            if not is_unique_violation(exc.error, ACTIVE_SLOT_INDEX):
                raise ServiceException(f"Failed to book slot: {exc}") from exc
            self.logger.warning("Booking race lost for teacher %s: %s", teacher_id, exc)
            raise BookingConflictException(
                BookingReason.CONFLICT.value,
                "This weekly time was just booked by someone else",
                details={"day_of_week": day_of_week, "start_time": start_time},
            ) from exc
        except RepositoryException as exc:
            raise ServiceException(f"Failed to book slot: {exc}") from exc

        lessons = self.lesson_repository.list_for_slot(slot.id)
        self.log_operation("slot_booked", slot_id=slot.id, lessons_created=len(lessons))

        if self.notification_service:
            self.notification_service.send_slot_booked(
                slot,
                subscription,
                teacher,
                student,
                lessons_created=len(lessons),
                first_lesson=lessons[0].date if lessons else None,
            )
        return BookingResult(slot=slot, subscription=subscription, lessons=lessons)

    # Cancellation

    @BaseService.measure_operation("cancel_slot")
    def cancel_slot(self, slot_id: str, effective_date: Optional[date] = None) -> CancellationResult:
        """
        Cancel a slot from ``effective_date`` (defaults to today in the slot's timezone).

        SCHEDULED lessons on or after the effective date are cancelled; past and
        COMPLETED lessons are untouched. The active subscription is closed at
        the current month and PENDING billing after that month is cancelled.
        """
        slot = self._get_slot(slot_id)
        now = self._now()
        effective = effective_date or local_today(now, slot.timezone)
        result = CancellationResult(slot_id=slot_id)
        teacher, student = self._get_parties(slot)

        with self.transaction():
            current = SlotStatus(slot.status)
            if not current.can_transition_to(SlotStatus.CANCELLED):
                raise InvalidStatusTransitionException("slot", current.value, SlotStatus.CANCELLED.value)

            if (
                self.slot_repository.count_lessons(slot_id) == 0
                and self.slot_repository.count_billing_records(slot_id) == 0
            ):
                self.slot_repository.delete(slot)
                result.slots_deleted = 1
            else:
                effective_start = localize_wall_clock(effective, time(0, 0), slot.timezone)
                result.lessons_cancelled = self.lesson_repository.cancel_scheduled_from(
                    slot_id, effective_start, now, SLOT_CANCELLED_REASON
                )

                open_subscription = self._open_subscription(slot)
                if open_subscription is not None:
                    end_month = max(self._current_month(), open_subscription.start_month)
                    if open_subscription.end_month:
                        end_month = min(end_month, open_subscription.end_month)
                    open_subscription.end_month = end_month
                    self._transition_subscription(open_subscription, SubscriptionStatus.CANCELLED)
                    result.billing_records_cancelled = self.billing_repository.cancel_pending_after(
                        self.subscription_repository.get_ids_for_slot(slot_id), end_month, now
                    )
                    result.refund = self._refund_quote(slot, open_subscription, effective)

                self._transition(slot, SlotStatus.CANCELLED)
                slot.cancelled_at = now
                result.slots_cancelled = 1

        self.log_operation(
            "slot_cancelled",
            slot_id=slot_id,
            deleted=bool(result.slots_deleted),
            lessons_cancelled=result.lessons_cancelled,
        )
        if self.notification_service and teacher is not None and student is not None:
            self.notification_service.send_slot_cancelled(
                slot, teacher, student, effective_date=effective, lessons_cancelled=result.lessons_cancelled
            )
        return result

    def _open_subscription(self, slot: RecurringSlot) -> Optional[SlotSubscription]:
        """The ACTIVE subscription, or the PAUSED one of a suspended slot."""
        for subscription in slot.subscriptions:
            if subscription.status in (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.PAUSED.value):
                return subscription
        return None

    def _refund_quote(
        self, slot: RecurringSlot, subscription: SlotSubscription, effective: date
    ) -> Optional[RefundQuote]:
        month = month_of(effective)
        if not subscription.covers_month(month):
            return None
        return calculate_refund_amount(
            slot.day_of_week,
            month,
            effective,
            monthly_rate=subscription.monthly_rate,
            per_lesson_rate=subscription.per_lesson_rate,
        )

    # Suspension

    @BaseService.measure_operation("suspend_slot")
    def suspend_slot(self, slot_id: str, effective_date: Optional[date] = None) -> StatusChangeResult:
        """ACTIVE -> SUSPENDED; future lessons cancelled with reason ``slot_suspended``."""
        slot = self._get_slot(slot_id)
        now = self._now()
        effective = effective_date or local_today(now, slot.timezone)
        teacher, student = self._get_parties(slot)

        with self.transaction():
            self._transition(slot, SlotStatus.SUSPENDED)
            effective_start = localize_wall_clock(effective, time(0, 0), slot.timezone)
            cancelled = self.lesson_repository.cancel_scheduled_from(
                slot_id, effective_start, now, SUSPENSION_REASON
            )
            subscription = slot.active_subscription
            if subscription is not None:
                self._transition_subscription(subscription, SubscriptionStatus.PAUSED)

        self.log_operation("slot_suspended", slot_id=slot_id, lessons_cancelled=cancelled)
        if self.notification_service and teacher is not None and student is not None:
            self.notification_service.send_slot_suspended(
                slot, teacher, student, lessons_cancelled=cancelled
            )
        return StatusChangeResult(slot=slot, lessons_affected=cancelled)

    @BaseService.measure_operation("reactivate_slot")
    def reactivate_slot(self, slot_id: str) -> StatusChangeResult:
        """
        SUSPENDED -> ACTIVE.

        Re-runs the conflict check (excluding this slot), restores lessons the
        suspension cancelled that are still in the future and regenerates the
        booking lookahead.
        """
        slot = self._get_slot(slot_id)
        current = SlotStatus(slot.status)
        if not current.can_transition_to(SlotStatus.ACTIVE):
            raise InvalidStatusTransitionException("slot", current.value, SlotStatus.ACTIVE.value)

        check = self.conflict_checker.can_book_recurring(
            slot.teacher_id,
            slot.day_of_week,
            slot.start_time,
            slot.duration_minutes,
            exclude_slot_id=slot.id,
        )
        check.raise_if_rejected()

        now = self._now()
        range_start, range_end = self._lookahead_range(local_today(now, slot.timezone))
        try:
            with self.transaction():
                paused = next(
                    (s for s in slot.subscriptions if s.status == SubscriptionStatus.PAUSED.value),
                    None,
                )
                if paused is not None:
                    self._transition_subscription(paused, SubscriptionStatus.ACTIVE)
                self._transition(slot, SlotStatus.ACTIVE)
                slot.cancelled_at = None
                self.slot_repository.flush()
                restored = self.lesson_repository.restore_suspended_from(slot_id, now, now)
                generated = self.lesson_generator.generate_lessons(
                    slot_id=slot_id, range_start=range_start, range_end=range_end
                )
        except IntegrityViolationException as exc:
            if not is_unique_violation(exc.error, ACTIVE_SLOT_INDEX):
                raise ServiceException(f"Failed to reactivate slot {slot_id}: {exc}") from exc
            raise BookingConflictException(
                BookingReason.CONFLICT.value,
                "This weekly time has been booked by someone else",
                details={"slot_id": slot_id},
            ) from exc
        except RepositoryException as exc:
            raise ServiceException(f"Failed to reactivate slot {slot_id}: {exc}") from exc

        self.log_operation("slot_reactivated", slot_id=slot_id, restored=restored, generated=generated)
        return StatusChangeResult(slot=slot, lessons_affected=restored, lessons_generated=generated)

    # Rates

    @BaseService.measure_operation("change_rate")
    def change_rate(
        self,
        slot_id: str,
        effective_month: str,
        monthly_rate: Optional[int] = None,
        per_lesson_rate: Optional[int] = None,
    ) -> SlotSubscription:
        """
        Close the active subscription at ``effective_month - 1`` (EXPIRED) and
        open the next sequential ACTIVE subscription with the new rate.
        """
        try:
            validate_month(effective_month)
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_MONTH") from exc
        if (monthly_rate is None) == (per_lesson_rate is None):
            raise ValidationException(
                "Provide exactly one of monthly_rate or per_lesson_rate", code="INVALID_RATE"
            )
        if (monthly_rate or 0) < 0 or (per_lesson_rate or 0) < 0:
            raise ValidationException("Rates must not be negative", code="INVALID_RATE")
        if effective_month < self._current_month():
            raise ValidationException(
                "effective_month cannot be in the past", code="INVALID_MONTH"
            )

        slot = self._get_slot(slot_id)
        if SlotStatus(slot.status) is not SlotStatus.ACTIVE:
            raise BusinessRuleException(
                "Rates can only be changed on an active slot", code="SLOT_NOT_ACTIVE"
            )
        active = slot.active_subscription
        if active is None:
            raise BusinessRuleException("Slot has no active subscription", code="NO_ACTIVE_SUBSCRIPTION")
        if effective_month <= active.start_month:
            raise ValidationException(
                "effective_month must be after the current subscription's start month",
                code="INVALID_MONTH",
                details={"start_month": active.start_month},
            )
        if active.end_month and effective_month > active.end_month:
            raise ValidationException(
                "effective_month is after the subscription ends",
                code="INVALID_MONTH",
                details={"end_month": active.end_month},
            )

        with self.transaction():
            final_month = active.end_month
            active.end_month = add_months(effective_month, -1)
            self._transition_subscription(active, SubscriptionStatus.EXPIRED)
            self.db.flush()
            new_subscription = self.subscription_repository.create(
                slot_id=slot.id,
                student_id=slot.student_id,
                start_month=effective_month,
                end_month=final_month,
                monthly_rate=monthly_rate,
                per_lesson_rate=per_lesson_rate,
                status=SubscriptionStatus.ACTIVE.value,
            )
            slot.monthly_rate = monthly_rate
            slot.per_lesson_rate = per_lesson_rate
            self.db.flush()
            self.db.refresh(slot, attribute_names=["subscriptions"])

        self.log_operation("slot_rate_changed", slot_id=slot_id, effective_month=effective_month)
        return new_subscription

    # Queries

    def get_slot(self, slot_id: str) -> RecurringSlot:
        return self._get_slot(slot_id)

    def list_slots(
        self,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[SlotStatus] = None,
    ) -> List[RecurringSlot]:
        return self.slot_repository.list_slots(teacher_id=teacher_id, student_id=student_id, status=status)
