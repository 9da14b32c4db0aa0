# backend/tests/services/test_lesson_service.py
"""
Optimistic locking, retries and attendance for LessonService.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import delete, update

from lessonloop.core.exceptions import (
    BookingConflictException,
    InvalidStatusTransitionException,
    NotFoundException,
    ValidationException,
    VersionConflictException,
)
from lessonloop.core.timezone_utils import ensure_utc
from lessonloop.models import Lesson, MonthlyBilling
from lessonloop.monitoring.prometheus_metrics import REGISTRY
from lessonloop.services.billing_service import BillingService
from lessonloop.services.lesson_service import LessonService
from lessonloop.services.recurring_slot_service import RecurringSlotService

WEDNESDAY = 3


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def conflict_count(outcome: str) -> float:
    return REGISTRY.get_sample_value("lessonloop_version_conflicts_total", {"outcome": outcome}) or 0.0


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
def service(db, clock, sleeper):
    return LessonService(db, clock=clock, sleep=sleeper)


@pytest.fixture
def booking(db, clock, teacher, student):
    return RecurringSlotService(db, clock=clock).book_recurring_slot(
        teacher.id, student.id, WEDNESDAY, "16:00", 30
    )


@pytest.fixture
def lesson(booking):
    return booking.lessons[0]


class TestUpdateWithVersion:
    def test_successful_update_bumps_version(self, service, lesson):
        updated = service.update_with_version(lesson.id, 1, {"notes": "Scales in D major"})

        assert updated.version == 2
        assert updated.notes == "Scales in D major"
        assert updated.updated_at is not None

    def test_stale_version_is_rejected(self, service, lesson):
        # Two clients read version 1; the first write wins
        service.update_with_version(lesson.id, 1, {"notes": "first"})
        surfaced_before = conflict_count("surfaced")

        with pytest.raises(VersionConflictException) as exc_info:
            service.update_with_version(lesson.id, 1, {"notes": "second"})

        assert exc_info.value.current_version == 2
        assert exc_info.value.attempted_version == 1
        assert exc_info.value.status_code == 409
        assert service.get_lesson(lesson.id).notes == "first"
        assert conflict_count("surfaced") == surfaced_before + 1

    def test_unknown_lesson(self, service):
        with pytest.raises(NotFoundException) as exc_info:
            service.update_with_version("01HZZZZZZZZZZZZZZZZZZZZZZZ", 1, {"notes": "x"})
        assert exc_info.value.code == "LESSON_NOT_FOUND"

    def test_write_between_read_and_update_is_rejected(self, db, monkeypatch, service, lesson):
        update_versioned = service.lesson_repository.update_versioned

        def racing_update(lesson_id, expected_version, values):
            # Another writer moves the lesson to version 2 after our read
            db.execute(update(Lesson).where(Lesson.id == lesson_id).values(version=Lesson.version + 1))
            return update_versioned(lesson_id, expected_version, values)

        monkeypatch.setattr(service.lesson_repository, "update_versioned", racing_update)

        with pytest.raises(VersionConflictException) as exc_info:
            service.update_with_version(lesson.id, 1, {"notes": "ours"})

        assert exc_info.value.current_version == 2
        assert exc_info.value.attempted_version == 1
        assert service.get_lesson(lesson.id).notes is None

    def test_delete_between_read_and_update_is_not_found(self, db, monkeypatch, service, lesson):
        update_versioned = service.lesson_repository.update_versioned

        def deleting_update(lesson_id, expected_version, values):
            db.execute(delete(Lesson).where(Lesson.id == lesson_id))
            return update_versioned(lesson_id, expected_version, values)

        monkeypatch.setattr(service.lesson_repository, "update_versioned", deleting_update)

        with pytest.raises(NotFoundException) as exc_info:
            service.update_with_version(lesson.id, 1, {"notes": "ours"})

        assert exc_info.value.code == "LESSON_NOT_FOUND"

    @pytest.mark.parametrize("patch", [{}, {"date": "2024-01-11"}, {"version": 7}])
    def test_invalid_patch(self, service, lesson, patch):
        with pytest.raises(ValidationException) as exc_info:
            service.update_with_version(lesson.id, 1, patch)
        assert exc_info.value.code == "INVALID_PATCH"

    def test_invalid_duration(self, service, lesson):
        with pytest.raises(ValidationException):
            service.update_with_version(lesson.id, 1, {"duration_minutes": 45})

    def test_duration_change(self, service, lesson):
        assert service.update_with_version(lesson.id, 1, {"duration_minutes": 60}).duration_minutes == 60

    def test_completed_lesson_cannot_be_cancelled(self, service, lesson):
        service.complete_lesson(lesson.id, 1)
        with pytest.raises(InvalidStatusTransitionException):
            service.cancel_lesson(lesson.id, 2)

    def test_cancelled_lesson_cannot_be_rescheduled_by_hand(self, service, lesson):
        service.cancel_lesson(lesson.id, 1, reason="sick")
        with pytest.raises(InvalidStatusTransitionException):
            service.update_with_version(lesson.id, 2, {"status": "SCHEDULED"})

    def test_cancel_records_reason(self, service, lesson):
        cancelled = service.cancel_lesson(lesson.id, 1, reason="sick")

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancellation_reason == "sick"
        assert cancelled.cancelled_at is not None


class TestUpdateWithRetry:
    def test_retries_after_concurrent_write(self, db, clock, service, sleeper, lesson):
        other_writer = LessonService(db, clock=clock)
        retried_before = conflict_count("retried")
        attempts = []

        def build_patch(current):
            attempts.append(current.version)
            if len(attempts) == 1:
                # Someone else saves between our read and our write
                other_writer.update_with_version(lesson.id, current.version, {"notes": "theirs"})
            return {"notes": f"{current.notes or ''} + ours".strip()}

        updated = service.update_with_retry(lesson.id, build_patch)

        assert attempts == [1, 2]
        assert updated.version == 3
        assert updated.notes == "theirs + ours"
        assert sleeper.calls == [0.1]
        assert conflict_count("retried") == retried_before + 1

    def test_gives_up_after_max_attempts(self, db, clock, service, sleeper, lesson):
        other_writer = LessonService(db, clock=clock)

        def always_beaten(current):
            other_writer.update_with_version(lesson.id, current.version, {"notes": "theirs"})
            return {"notes": "ours"}

        with pytest.raises(VersionConflictException):
            service.update_with_retry(lesson.id, always_beaten, max_attempts=3)

        # Exponential backoff between attempts, none after the last
        assert sleeper.calls == [0.1, 0.2]

    def test_negative_attempts_rejected(self, service, lesson):
        with pytest.raises(ValidationException) as exc_info:
            service.update_with_retry(lesson.id, lambda current: {"notes": "x"}, max_attempts=-1)
        assert exc_info.value.code == "INVALID_ATTEMPTS"


class TestAttendance:
    def test_completion_counts_toward_billing(self, db, clock, service, lesson):
        BillingService(db, clock=clock).generate_billing_for_month("2024-01")

        service.complete_lesson(lesson.id, 1)

        record = db.query(MonthlyBilling).filter_by(month="2024-01").one()
        db.refresh(record)
        assert record.expected_lessons == 5
        assert record.actual_lessons == 1
        assert record.total_amount == 13000

    def test_actual_lessons_capped_at_expected(self, db, clock, service, booking):
        BillingService(db, clock=clock).generate_billing_for_month("2024-01")
        record = db.query(MonthlyBilling).filter_by(month="2024-01").one()
        record.actual_lessons = record.expected_lessons
        db.commit()

        service.complete_lesson(booking.lessons[0].id, 1)

        db.refresh(record)
        assert record.actual_lessons == 5

    def test_cancelled_billing_not_counted(self, db, clock, service, lesson):
        billing = BillingService(db, clock=clock)
        billing.generate_billing_for_month("2024-01")
        record = db.query(MonthlyBilling).filter_by(month="2024-01").one()
        billing.cancel_billing(record.id)

        service.complete_lesson(lesson.id, 1)

        db.refresh(record)
        assert record.actual_lessons == 0

    def test_completion_without_billing_record(self, service, lesson):
        completed = service.complete_lesson(lesson.id, 1)
        assert completed.status == "COMPLETED"
        assert completed.completed_at is not None


class TestSingleLessons:
    def test_book_single_lesson(self, service, teacher, student):
        lesson = service.book_single_lesson(teacher.id, student.id, utc(2024, 1, 15, 21, 0), 60)

        assert lesson.is_recurring is False
        assert lesson.slot_id is None
        assert lesson.version == 1
        assert ensure_utc(lesson.date) == utc(2024, 1, 15, 21, 0)
        assert lesson.timezone == "America/Chicago"

    def test_single_lesson_conflicts_with_weekly_slot(self, service, booking, teacher, student):
        with pytest.raises(BookingConflictException) as exc_info:
            service.book_single_lesson(teacher.id, student.id, utc(2024, 1, 17, 22, 0), 30)
        assert exc_info.value.code == "CONFLICT"

    def test_second_single_lesson_conflicts(self, service, teacher, student, second_student):
        service.book_single_lesson(teacher.id, student.id, utc(2024, 1, 15, 21, 0), 60)
        with pytest.raises(BookingConflictException):
            service.book_single_lesson(teacher.id, second_student.id, utc(2024, 1, 15, 21, 30), 30)

    def test_invalid_duration(self, service, teacher, student):
        with pytest.raises(ValidationException) as exc_info:
            service.book_single_lesson(teacher.id, student.id, utc(2024, 1, 15, 21, 0), 45)
        assert exc_info.value.code == "INVALID_DURATION"
