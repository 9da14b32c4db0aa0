# backend/lessonloop/services/billing_service.py
"""
Monthly Billing Service for LessonLoop

Creates one MonthlyBilling record per (ACTIVE subscription, month), drives
the billing status machine and tracks completed lessons against the
expected count.

Billing generation is idempotent: subscriptions that already have a record
for the month are skipped, and a duplicate insert lost to a concurrent run
(unique ``(subscription_id, month)``) is counted as skipped, not as an error.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import BillingStatus, JobName
from ..core.exceptions import (
    IntegrityViolationException,
    InvalidStatusTransitionException,
    NotFoundException,
    PartialBatchException,
    ValidationException,
)
from ..core.timezone_utils import convert_to_timezone, ensure_utc
from ..domain.billing_math import calculate_monthly_billing
from ..domain.months import format_month, month_of, validate_month
from ..models.billing import MonthlyBilling
from ..models.lesson import Lesson
from ..models.recurring_slot import RecurringSlot, SlotSubscription
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


@dataclass
class BillingJobResult:
    success: bool
    month: str
    billing_records_created: int
    subscriptions_processed: int
    skipped: int
    errors: List[str] = field(default_factory=list)


@dataclass
class OverdueJobResult:
    success: bool
    marked_overdue: int
    errors: List[str] = field(default_factory=list)


@dataclass
class MonthlySummary:
    month: str
    record_count: int
    total_amount: int
    expected_lessons: int
    actual_lessons: int
    amount_by_status: Dict[str, int] = field(default_factory=dict)
    count_by_status: Dict[str, int] = field(default_factory=dict)


class BillingService(BaseService):
    """Monthly billing generation and lifecycle."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.billing_repository = RepositoryFactory.create_billing_repository(db)
        self.subscription_repository = RepositoryFactory.create_subscription_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.student_repository = RepositoryFactory.create_student_repository(db)
        self.job_log_repository = RepositoryFactory.create_job_log_repository(db)
        self.notification_service = notification_service

    # Generation

    def _create_record(self, subscription: SlotSubscription, slot: RecurringSlot, month: str) -> bool:
        """Create the PENDING record; False if another run created it first."""
        quote = calculate_monthly_billing(
            slot.day_of_week,
            month,
            monthly_rate=subscription.monthly_rate,
            per_lesson_rate=subscription.per_lesson_rate,
        )
        try:
            self.billing_repository.create(
                subscription_id=subscription.id,
                student_id=subscription.student_id,
                teacher_id=slot.teacher_id,
                month=month,
                expected_lessons=quote.expected_lessons,
                actual_lessons=0,
                rate_per_lesson=quote.rate_per_lesson,
                total_amount=quote.total_amount,
                status=BillingStatus.PENDING.value,
            )
        except IntegrityViolationException:
            if self.billing_repository.get_for_subscription_month(subscription.id, month):
                return False
            raise
        if subscription.last_billed_month is None or subscription.last_billed_month < month:
            subscription.last_billed_month = month
        return True

    @BaseService.measure_operation("generate_billing_for_month")
    def generate_billing_for_month(self, month: str) -> BillingJobResult:
        """
        Create PENDING billing records for every eligible subscription.

        One transaction per subscription; failures are collected in ``errors``.
        """
        try:
            validate_month(month)
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_MONTH") from exc

        job_name = JobName.GENERATE_BILLING.value
        self.logger.info("Starting %s for %s", job_name, month)
        result = BillingJobResult(
            success=True, month=month, billing_records_created=0, subscriptions_processed=0, skipped=0
        )

        for subscription, slot in self.billing_repository.get_unbilled_subscriptions(month):
            subscription_id = subscription.id
            try:
                with self.transaction():
                    created = self._create_record(subscription, slot, month)
                result.subscriptions_processed += 1
                if created:
                    result.billing_records_created += 1
                else:
                    result.skipped += 1
            except Exception as exc:
                error = PartialBatchException(job_name, f"subscription {subscription_id}", exc)
                self.logger.error(str(error), exc_info=True)
                result.errors.append(str(error))

        result.success = not result.errors
        prometheus_metrics.record_billing_records_created(result.billing_records_created)
        self._record_run(
            job_name,
            success=result.success,
            units=result.subscriptions_processed,
            created=result.billing_records_created,
            errors=result.errors,
            parameters={"month": month},
        )
        self.logger.info(
            "Finished %s for %s: %d created, %d skipped, %d errors",
            job_name,
            month,
            result.billing_records_created,
            result.skipped,
            len(result.errors),
        )
        return result

    def _record_run(
        self,
        job_name: str,
        *,
        success: bool,
        units: int,
        created: int,
        errors: List[str],
        parameters: Dict[str, Any],
    ) -> None:
        prometheus_metrics.record_batch_run(job_name, success)
        try:
            with self.transaction():
                self.job_log_repository.record(
                    job_name=job_name,
                    executed_at=ensure_utc(self.clock()),
                    success=success,
                    units_processed=units,
                    records_created=created,
                    errors=errors,
                    parameters=parameters,
                )
        except Exception:
            self.logger.error("Failed to record %s run history", job_name, exc_info=True)

    # Status transitions

    def _get_billing(self, billing_id: str) -> MonthlyBilling:
        billing = self.billing_repository.get_by_id(billing_id)
        if billing is None:
            raise NotFoundException(f"Billing record {billing_id} not found", code="BILLING_NOT_FOUND")
        return billing

    def _transition(self, billing: MonthlyBilling, target: BillingStatus) -> None:
        current = BillingStatus(billing.status)
        if not current.can_transition_to(target):
            raise InvalidStatusTransitionException("billing", current.value, target.value)
        billing.status = target.value

    @BaseService.measure_operation("mark_billed")
    def mark_billed(self, billing_id: str) -> MonthlyBilling:
        """PENDING -> BILLED; sends the invoice email after commit."""
        with self.transaction():
            billing = self._get_billing(billing_id)
            self._transition(billing, BillingStatus.BILLED)
            billing.billed_at = ensure_utc(self.clock())

        if self.notification_service:
            student = self.student_repository.get_by_id(billing.student_id)
            if student is not None:
                self.notification_service.send_billing_invoice(billing, student)
        return billing

    @BaseService.measure_operation("mark_paid")
    def mark_paid(self, billing_id: str, payment_method: Optional[str] = None) -> MonthlyBilling:
        """BILLED or OVERDUE -> PAID."""
        with self.transaction():
            billing = self._get_billing(billing_id)
            self._transition(billing, BillingStatus.PAID)
            billing.paid_at = ensure_utc(self.clock())
            billing.payment_method = payment_method
        return billing

    @BaseService.measure_operation("cancel_billing")
    def cancel_billing(self, billing_id: str) -> MonthlyBilling:
        """Any non-PAID state -> CANCELLED."""
        with self.transaction():
            billing = self._get_billing(billing_id)
            self._transition(billing, BillingStatus.CANCELLED)
            billing.cancelled_at = ensure_utc(self.clock())
        return billing

    @BaseService.measure_operation("mark_overdue_billings")
    def mark_overdue_billings(self, now: Optional[datetime] = None) -> OverdueJobResult:
        """BILLED records invoiced more than ``billing_due_days`` ago become OVERDUE."""
        job_name = JobName.MARK_OVERDUE.value
        current = ensure_utc(now or self.clock())
        cutoff = current - timedelta(days=settings.billing_due_days)
        result = OverdueJobResult(success=True, marked_overdue=0)
        newly_overdue: List[MonthlyBilling] = []

        for billing in self.billing_repository.get_billed_before(cutoff):
            billing_id = billing.id
            try:
                with self.transaction():
                    self._transition(billing, BillingStatus.OVERDUE)
                result.marked_overdue += 1
                newly_overdue.append(billing)
            except Exception as exc:
                error = PartialBatchException(job_name, f"billing {billing_id}", exc)
                self.logger.error(str(error), exc_info=True)
                result.errors.append(str(error))

        result.success = not result.errors
        self._record_run(
            job_name,
            success=result.success,
            units=result.marked_overdue + len(result.errors),
            created=result.marked_overdue,
            errors=result.errors,
            parameters={"cutoff": cutoff.isoformat()},
        )

        if self.notification_service:
            for billing in newly_overdue:
                student = self.student_repository.get_by_id(billing.student_id)
                teacher = self.teacher_repository.get_by_id(billing.teacher_id)
                if student is not None and teacher is not None:
                    self.notification_service.send_billing_overdue(billing, student, teacher)
        return result

    # Attendance

    def record_lesson_completed(self, lesson: Lesson) -> bool:
        """
        Count a completed recurring lesson against its month's billing record.

        Uses a single guarded UPDATE so concurrent completions cannot push
        ``actual_lessons`` past ``expected_lessons``. ``total_amount`` is never
        touched. Does not commit.

        Returns:
            True if a record was incremented
        """
        if not lesson.slot_id:
            return False
        month = month_of(convert_to_timezone(lesson.date, lesson.timezone))
        subscription_ids = self.subscription_repository.get_ids_for_slot(lesson.slot_id)
        updated = self.billing_repository.increment_actual_lessons(subscription_ids, month)
        if not updated:
            self.logger.info(
                "No open billing record to count lesson %s against for %s", lesson.id, month
            )
        return updated > 0

    # Reporting

    @BaseService.measure_operation("get_monthly_summary")
    def get_monthly_summary(
        self, month: str, teacher_id: Optional[str] = None, student_id: Optional[str] = None
    ) -> MonthlySummary:
        try:
            validate_month(month)
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_MONTH") from exc

        records = self.billing_repository.list_for_month(month, teacher_id, student_id)
        summary = MonthlySummary(
            month=month, record_count=0, total_amount=0, expected_lessons=0, actual_lessons=0
        )
        for record in records:
            summary.record_count += 1
            summary.expected_lessons += record.expected_lessons
            summary.actual_lessons += record.actual_lessons
            summary.count_by_status[record.status] = summary.count_by_status.get(record.status, 0) + 1
            summary.amount_by_status[record.status] = (
                summary.amount_by_status.get(record.status, 0) + record.total_amount
            )
            if record.status != BillingStatus.CANCELLED.value:
                summary.total_amount += record.total_amount
        return summary

    def list_billing(
        self,
        month: str,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[BillingStatus] = None,
    ) -> List[MonthlyBilling]:
        try:
            validate_month(month)
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_MONTH") from exc
        return self.billing_repository.list_for_month(month, teacher_id, student_id, status)

    def current_month(self) -> str:
        return format_month(ensure_utc(self.clock()))
