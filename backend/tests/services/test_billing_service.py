# backend/tests/services/test_billing_service.py
"""
Monthly billing generation and lifecycle.

Run with: pytest backend/tests/services/test_billing_service.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from lessonloop.core.enums import BillingStatus, JobName
from lessonloop.core.exceptions import InvalidStatusTransitionException, NotFoundException, ValidationException
from lessonloop.models import BackgroundJobLog, MonthlyBilling
from lessonloop.services.billing_service import BillingService
from lessonloop.services.recurring_slot_service import RecurringSlotService

WEDNESDAY = 3


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def billing_service(db, clock):
    return BillingService(db, clock=clock)


@pytest.fixture
def slot_service(db, clock):
    return RecurringSlotService(db, clock=clock)


@pytest.fixture
def booking(slot_service, teacher, student):
    return slot_service.book_recurring_slot(teacher.id, student.id, WEDNESDAY, "16:00", 30)


@pytest.fixture
def pending(billing_service, booking):
    billing_service.generate_billing_for_month("2024-02")
    return billing_service.list_billing("2024-02")[0]


class TestGenerateBilling:
    def test_creates_pending_record(self, db, billing_service, booking):
        result = billing_service.generate_billing_for_month("2024-02")

        assert result.success
        assert result.billing_records_created == 1
        assert result.subscriptions_processed == 1

        record = db.query(MonthlyBilling).one()
        assert record.status == BillingStatus.PENDING.value
        assert record.expected_lessons == 4
        assert record.actual_lessons == 0
        assert record.total_amount == 13000
        assert record.rate_per_lesson == 3250
        assert record.teacher_id == booking.slot.teacher_id
        assert booking.subscription.last_billed_month == "2024-02"

    def test_generation_is_idempotent(self, db, billing_service, booking):
        billing_service.generate_billing_for_month("2024-02")
        second = billing_service.generate_billing_for_month("2024-02")

        assert second.billing_records_created == 0
        assert db.query(MonthlyBilling).count() == 1

    def test_flat_and_per_lesson_models(self, db, billing_service, slot_service, teacher, student, second_student):
        slot_service.book_recurring_slot(teacher.id, student.id, WEDNESDAY, "10:00", 30, monthly_rate=12000)
        slot_service.book_recurring_slot(
            teacher.id, second_student.id, WEDNESDAY, "11:00", 30, per_lesson_rate=3000
        )

        billing_service.generate_billing_for_month("2024-05")

        by_student = {r.student_id: r for r in db.query(MonthlyBilling).filter_by(month="2024-05")}
        flat, per_lesson = by_student[student.id], by_student[second_student.id]
        assert (flat.expected_lessons, flat.total_amount, flat.rate_per_lesson) == (5, 12000, 2400)
        assert (per_lesson.expected_lessons, per_lesson.total_amount, per_lesson.rate_per_lesson) == (5, 15000, 3000)

    def test_month_before_subscription_not_billed(self, billing_service, booking):
        assert billing_service.generate_billing_for_month("2023-12").billing_records_created == 0

    def test_paused_and_cancelled_subscriptions_not_billed(self, billing_service, slot_service, booking):
        slot_service.suspend_slot(booking.slot.id)
        assert billing_service.generate_billing_for_month("2024-02").billing_records_created == 0

        slot_service.cancel_slot(booking.slot.id)
        assert billing_service.generate_billing_for_month("2024-02").billing_records_created == 0

    def test_invalid_month(self, billing_service):
        with pytest.raises(ValidationException) as exc_info:
            billing_service.generate_billing_for_month("2024-2")
        assert exc_info.value.code == "INVALID_MONTH"

    def test_run_is_logged(self, db, billing_service, booking):
        billing_service.generate_billing_for_month("2024-02")

        entry = db.query(BackgroundJobLog).one()
        assert entry.job_name == JobName.GENERATE_BILLING.value
        assert entry.units_processed == 1
        assert entry.records_created == 1
        assert entry.parameters == {"month": "2024-02"}


class TestStatusTransitions:
    def test_pending_to_billed_to_paid(self, billing_service, pending):
        billed = billing_service.mark_billed(pending.id)
        assert billed.status == BillingStatus.BILLED.value
        assert billed.billed_at is not None

        paid = billing_service.mark_paid(pending.id, payment_method="card")
        assert paid.status == BillingStatus.PAID.value
        assert paid.paid_at is not None
        assert paid.payment_method == "card"

    def test_pending_cannot_be_paid(self, billing_service, pending):
        with pytest.raises(InvalidStatusTransitionException) as exc_info:
            billing_service.mark_paid(pending.id)
        assert exc_info.value.details == {
            "entity": "billing",
            "current_status": "PENDING",
            "target_status": "PAID",
        }

    def test_paid_is_terminal(self, billing_service, pending):
        billing_service.mark_billed(pending.id)
        billing_service.mark_paid(pending.id)
        with pytest.raises(InvalidStatusTransitionException):
            billing_service.cancel_billing(pending.id)

    def test_cancel_pending(self, billing_service, pending):
        cancelled = billing_service.cancel_billing(pending.id)
        assert cancelled.status == BillingStatus.CANCELLED.value
        assert cancelled.cancelled_at is not None

    def test_unknown_record(self, billing_service):
        with pytest.raises(NotFoundException) as exc_info:
            billing_service.mark_billed("01HZZZZZZZZZZZZZZZZZZZZZZZ")
        assert exc_info.value.code == "BILLING_NOT_FOUND"

    def test_invoice_email_on_billing(self, db, clock, pending, student, notification_service, email_service):
        service = BillingService(db, clock=clock, notification_service=notification_service)

        service.mark_billed(pending.id)

        assert len(email_service.sent) == 1
        to_email, subject, html = email_service.sent[0]
        assert to_email == student.email
        assert subject == "Your monthly lesson invoice"
        assert "$130.00" in html


class TestOverdue:
    def test_billed_past_due_becomes_overdue(self, clock, billing_service, pending):
        billing_service.mark_billed(pending.id)

        clock.advance(days=13)
        assert billing_service.mark_overdue_billings().marked_overdue == 0

        clock.advance(days=2)
        result = billing_service.mark_overdue_billings()

        assert result.success
        assert result.marked_overdue == 1
        assert billing_service.list_billing("2024-02", status=BillingStatus.OVERDUE)[0].id == pending.id

    def test_overdue_can_still_be_paid(self, clock, billing_service, pending):
        billing_service.mark_billed(pending.id)
        billing_service.mark_overdue_billings(now=clock() + timedelta(days=30))

        assert billing_service.mark_paid(pending.id).status == BillingStatus.PAID.value

    def test_pending_records_never_overdue(self, clock, billing_service, pending):
        result = billing_service.mark_overdue_billings(now=clock() + timedelta(days=90))
        assert result.marked_overdue == 0

    def test_overdue_notice(self, db, clock, pending, teacher, notification_service, email_service):
        service = BillingService(db, clock=clock, notification_service=notification_service)
        service.mark_billed(pending.id)
        email_service.sent.clear()

        service.mark_overdue_billings(now=utc(2024, 2, 1, 12, 0))

        assert [subject for _to, subject, _html in email_service.sent] == ["Lesson invoice overdue"]
        assert teacher.name in email_service.sent[0][2]


class TestReporting:
    def test_monthly_summary(self, billing_service, slot_service, booking, teacher, second_student):
        slot_service.book_recurring_slot(
            teacher.id, second_student.id, WEDNESDAY, "11:00", 30, per_lesson_rate=3000
        )
        billing_service.generate_billing_for_month("2024-02")
        records = billing_service.list_billing("2024-02")
        billing_service.cancel_billing(records[1].id)

        summary = billing_service.get_monthly_summary("2024-02", teacher_id=teacher.id)

        assert summary.record_count == 2
        assert summary.expected_lessons == 8
        assert summary.count_by_status == {"PENDING": 1, "CANCELLED": 1}
        assert summary.total_amount == records[0].total_amount
        assert sum(summary.amount_by_status.values()) == 13000 + 12000

    def test_current_month(self, billing_service):
        assert billing_service.current_month() == "2024-01"
