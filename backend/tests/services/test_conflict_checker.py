# backend/tests/services/test_conflict_checker.py
"""
Integration tests for ConflictChecker against the test database.

The teacher is available Mondays 15:00-18:00 and Wednesdays 09:00-17:00
(America/Chicago). The clock is Monday 2024-01-08 06:00 local.
"""

from datetime import date, datetime, timezone

import pytest

from lessonloop.core.enums import BookingReason
from lessonloop.core.exceptions import BookingConflictException, NotFoundException, ValidationException
from lessonloop.models import Lesson
from lessonloop.services.conflict_checker import ConflictChecker
from lessonloop.services.recurring_slot_service import RecurringSlotService

MONDAY = 1
TUESDAY = 2
WEDNESDAY = 3


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def checker(db, clock):
    return ConflictChecker(db, clock=clock)


@pytest.fixture
def booked_slot(db, clock, teacher, student):
    """Wednesday 16:00-16:30 weekly slot."""
    service = RecurringSlotService(db, clock=clock)
    return service.book_recurring_slot(teacher.id, student.id, WEDNESDAY, "16:00", 30).slot


class TestRecurringAvailability:
    def test_inside_window_is_allowed(self, checker, teacher):
        check = checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 30)
        assert check.allowed
        assert check.reason is None

    def test_day_without_window_is_not_available(self, checker, teacher):
        check = checker.can_book_recurring(teacher.id, TUESDAY, "16:00", 30)
        assert not check.allowed
        assert check.reason is BookingReason.NOT_AVAILABLE

    def test_running_past_window_end_is_not_available(self, checker, teacher):
        check = checker.can_book_recurring(teacher.id, WEDNESDAY, "16:45", 30)
        assert check.reason is BookingReason.NOT_AVAILABLE
        assert check.details["end_time"] == "17:15"

    def test_lesson_ending_at_window_end_is_allowed(self, checker, teacher):
        assert checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 60).allowed

    def test_unknown_teacher(self, checker):
        with pytest.raises(NotFoundException) as exc_info:
            checker.can_book_recurring("01HZZZZZZZZZZZZZZZZZZZZZZZ", WEDNESDAY, "16:00", 30)
        assert exc_info.value.code == "TEACHER_NOT_FOUND"

    @pytest.mark.parametrize(
        "day_of_week, start_time, duration",
        [(7, "16:00", 30), (WEDNESDAY, "16:7", 30), (WEDNESDAY, "16:00", 45), (WEDNESDAY, "23:45", 30)],
    )
    def test_malformed_pattern(self, checker, teacher, day_of_week, start_time, duration):
        with pytest.raises(ValidationException) as exc_info:
            checker.can_book_recurring(teacher.id, day_of_week, start_time, duration)
        assert exc_info.value.code == "INVALID_SLOT_PATTERN"


class TestRecurringConflicts:
    def test_same_time_conflicts_with_active_slot(self, checker, teacher, booked_slot):
        check = checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 30)
        assert check.reason is BookingReason.CONFLICT
        assert check.details["slot_id"] == booked_slot.id

    def test_partial_overlap_conflicts(self, checker, teacher, booked_slot):
        assert checker.can_book_recurring(teacher.id, WEDNESDAY, "15:30", 60).reason is BookingReason.CONFLICT

    def test_adjacent_slots_do_not_conflict(self, checker, teacher, booked_slot):
        assert checker.can_book_recurring(teacher.id, WEDNESDAY, "16:30", 30).allowed
        assert checker.can_book_recurring(teacher.id, WEDNESDAY, "15:30", 30).allowed

    def test_excluding_the_slot_itself(self, checker, teacher, booked_slot):
        check = checker.can_book_recurring(
            teacher.id, WEDNESDAY, "16:00", 30, exclude_slot_id=booked_slot.id
        )
        assert check.allowed

    def test_overlap_with_single_lesson(self, db, checker, teacher, student):
        # Setup: one-off hour-long lesson Monday 2024-01-15 15:00 local
        lesson = Lesson(
            teacher_id=teacher.id,
            student_id=student.id,
            date=utc(2024, 1, 15, 21, 0),
            duration_minutes=60,
            timezone=teacher.timezone,
        )
        db.add(lesson)
        db.commit()

        # Execute
        check = checker.can_book_recurring(teacher.id, MONDAY, "15:30", 30)

        # Assert
        assert check.reason is BookingReason.CONFLICT
        assert check.details["lesson_id"] == lesson.id

    def test_single_lesson_months_ahead_conflicts(self, db, checker, teacher, second_student, lesson_settings):
        # Setup: Wednesday 2024-02-21 16:00 local, six weeks out
        lesson_settings.advance_booking_days = 60
        lesson = Lesson(
            teacher_id=teacher.id,
            student_id=second_student.id,
            date=utc(2024, 2, 21, 22, 0),
            duration_minutes=30,
            timezone=teacher.timezone,
        )
        db.add(lesson)
        db.commit()

        # Execute
        check = checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 30)

        # Assert
        assert check.reason is BookingReason.CONFLICT
        assert check.details["lesson_id"] == lesson.id

    def test_lesson_before_first_occurrence_does_not_conflict(self, db, checker, teacher, student):
        db.add(
            Lesson(
                teacher_id=teacher.id,
                student_id=student.id,
                date=utc(2024, 1, 10, 22, 0),
                duration_minutes=30,
                timezone=teacher.timezone,
            )
        )
        db.commit()
        assert checker.can_book_recurring(
            teacher.id, WEDNESDAY, "16:00", 30, first_date=date(2024, 1, 15)
        ).allowed

    def test_cancelled_lesson_does_not_conflict(self, db, checker, teacher, student):
        db.add(
            Lesson(
                teacher_id=teacher.id,
                student_id=student.id,
                date=utc(2024, 1, 15, 21, 0),
                duration_minutes=60,
                timezone=teacher.timezone,
                status="CANCELLED",
            )
        )
        db.commit()
        assert checker.can_book_recurring(teacher.id, MONDAY, "15:30", 30).allowed


class TestBlockedAndWindow:
    def test_blocked_first_occurrence(self, checker, teacher, block_time):
        block_time(utc(2024, 1, 10, 21, 30), utc(2024, 1, 10, 22, 15))

        check = checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 30)

        assert check.reason is BookingReason.BLOCKED
        assert "Recital" in check.message

    def test_block_elsewhere_in_the_day(self, checker, teacher, block_time):
        block_time(utc(2024, 1, 10, 15, 0), utc(2024, 1, 10, 16, 0))
        assert checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 30).allowed

    def test_first_occurrence_beyond_advance_window(self, checker, teacher):
        check = checker.can_book_recurring(teacher.id, WEDNESDAY, "16:00", 30, first_date=date(2024, 3, 1))
        assert check.reason is BookingReason.OUT_OF_WINDOW
        assert check.details["first_lesson"] == utc(2024, 3, 6, 22, 0).isoformat()

    def test_raise_if_rejected(self, checker, teacher):
        check = checker.can_book_recurring(teacher.id, TUESDAY, "16:00", 30)
        with pytest.raises(BookingConflictException) as exc_info:
            check.raise_if_rejected()
        assert exc_info.value.code == "NOT_AVAILABLE"
        assert exc_info.value.status_code == 409


class TestSingleBookingCheck:
    def test_inside_window(self, checker, teacher):
        assert checker.can_book(teacher.id, utc(2024, 1, 15, 21, 0), utc(2024, 1, 15, 21, 30)).allowed

    def test_overlaps_weekly_slot_occurrence(self, checker, teacher, booked_slot):
        check = checker.can_book(teacher.id, utc(2024, 1, 17, 22, 15), utc(2024, 1, 17, 22, 45))
        assert check.reason is BookingReason.CONFLICT
        assert check.details["slot_id"] == booked_slot.id

    def test_adjacent_to_weekly_slot(self, checker, teacher, booked_slot):
        assert checker.can_book(teacher.id, utc(2024, 1, 17, 22, 30), utc(2024, 1, 17, 23, 0)).allowed

    def test_minimum_notice(self, db, checker, teacher, lesson_settings):
        lesson_settings.min_notice_hours = 200
        db.commit()

        check = checker.can_book(teacher.id, utc(2024, 1, 15, 21, 0), utc(2024, 1, 15, 21, 30))

        assert check.reason is BookingReason.OUT_OF_WINDOW

    def test_past_time_is_out_of_window(self, checker, teacher):
        check = checker.can_book(teacher.id, utc(2024, 1, 3, 16, 0), utc(2024, 1, 3, 16, 30))
        assert check.reason is BookingReason.OUT_OF_WINDOW

    def test_inverted_range(self, checker, teacher):
        with pytest.raises(ValidationException):
            checker.can_book(teacher.id, utc(2024, 1, 15, 21, 0), utc(2024, 1, 15, 21, 0))

    def test_teacher_without_settings_uses_default_policy(self, db, checker, teacher, lesson_settings):
        db.delete(lesson_settings)
        db.commit()
        assert checker.can_book(teacher.id, utc(2024, 1, 15, 21, 0), utc(2024, 1, 15, 21, 30)).allowed


class TestAvailableSlots:
    def _wednesday(self, candidates, duration):
        return [c for c in candidates if c.day_of_week == WEDNESDAY and c.duration_minutes == duration]

    def test_candidates_on_half_hour_steps(self, checker, teacher):
        candidates = checker.list_available_slots(teacher.id)

        wednesday_30 = self._wednesday(candidates, 30)
        assert len(wednesday_30) == 16
        assert wednesday_30[0].start_time == "09:00"
        assert wednesday_30[-1].start_time == "16:30"
        assert len(self._wednesday(candidates, 60)) == 15
        assert all(c.monthly_rate == 13000 for c in wednesday_30)

    def test_booked_slot_removes_overlapping_candidates(self, checker, teacher, booked_slot):
        candidates = checker.list_available_slots(teacher.id)

        starts_30 = {c.start_time for c in self._wednesday(candidates, 30)}
        starts_60 = {c.start_time for c in self._wednesday(candidates, 60)}
        assert "16:00" not in starts_30
        assert "16:30" in starts_30
        assert {"15:30", "16:00"}.isdisjoint(starts_60)
        assert "15:00" in starts_60

    def test_candidates_can_be_booked(self, checker, teacher):
        # Every advertised weekday time passes the availability check
        for candidate in checker.list_available_slots(teacher.id)[:5]:
            check = checker.can_book_recurring(
                teacher.id, candidate.day_of_week, candidate.start_time, candidate.duration_minutes
            )
            assert check.reason is not BookingReason.NOT_AVAILABLE
