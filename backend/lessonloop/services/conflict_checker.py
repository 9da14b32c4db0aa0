# backend/lessonloop/services/conflict_checker.py
"""
Conflict Checker Service for LessonLoop

Decides whether a candidate lesson time can be booked. Checks run in a fixed
order and the first failure short-circuits with a reason code:

1. NOT_AVAILABLE: not fully inside an active weekly availability window
2. BLOCKED: intersects a blocked period
3. CONFLICT: overlaps another ACTIVE slot or a SCHEDULED lesson
4. OUT_OF_WINDOW: violates minimum notice or the advance-booking window

Both a concrete UTC range (single lessons) and a weekly pattern (recurring
slots) can be checked. The check is a pre-write query; the partial unique
index on ACTIVE slots is the backstop for concurrent bookings.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import BillingModel, BookingReason
from ..core.exceptions import BookingConflictException, NotFoundException, ValidationException
from ..core.timezone_utils import convert_to_timezone, ensure_utc
from ..domain.billing_math import derive_slot_rates
from ..domain.occurrences import (
    ALLOWED_DURATIONS,
    day_name,
    day_of_week_for,
    next_occurrence,
    occurrence_ranges,
    occurrences_in_range,
    ranges_overlap,
    validate_day_of_week,
    validate_duration,
)
from ..models.teacher import TeacherLessonSettings, TeacherProfile
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from ..utils.time_utils import (
    MINUTES_PER_DAY,
    format_hhmm,
    hhmm_to_minutes,
    minutes_to_time_str,
    parse_hhmm,
    time_to_minutes,
)
from .base import BaseService

logger = logging.getLogger(__name__)

MAX_LESSON_MINUTES = max(ALLOWED_DURATIONS)
CANDIDATE_STEP_MINUTES = 30


@dataclass
class BookingCheck:
    """Outcome of a booking check."""

    allowed: bool
    reason: Optional[BookingReason] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls) -> "BookingCheck":
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: BookingReason, message: str, **details: Any) -> "BookingCheck":
        return cls(allowed=False, reason=reason, message=message, details=details)

    def raise_if_rejected(self) -> None:
        if self.allowed:
            return
        reason = self.reason.value if self.reason else BookingReason.CONFLICT.value
        raise BookingConflictException(reason, self.message, details=self.details)


@dataclass(frozen=True)
class BookingPolicy:
    advance_booking_days: int
    min_notice_hours: int


@dataclass(frozen=True)
class AvailableSlot:
    day_of_week: int
    start_time: str
    duration_minutes: int
    monthly_rate: Optional[int]
    per_lesson_rate: Optional[int]


def _validate_pattern(day_of_week: int, start_time: str, duration_minutes: int) -> time:
    try:
        validate_day_of_week(day_of_week)
        validate_duration(duration_minutes)
        wall_time = parse_hhmm(start_time)
    except ValueError as exc:
        raise ValidationException(str(exc), code="INVALID_SLOT_PATTERN") from exc
    if time_to_minutes(wall_time) + duration_minutes > MINUTES_PER_DAY:
        raise ValidationException(
            "Lesson may not run past midnight", code="INVALID_SLOT_PATTERN"
        )
    return wall_time


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts and time validation.

    This service centralizes all conflict detection logic to ensure
    consistent validation for recurring slots and single lessons.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[ConflictCheckerRepository] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, clock)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)

    # Teacher context

    def _get_teacher(self, teacher_id: str) -> TeacherProfile:
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None or not teacher.is_active:
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")
        return teacher

    def get_policy(self, lesson_settings: Optional[TeacherLessonSettings]) -> BookingPolicy:
        if lesson_settings is None:
            return BookingPolicy(
                advance_booking_days=settings.default_advance_booking_days,
                min_notice_hours=settings.min_booking_notice_hours,
            )
        return BookingPolicy(
            advance_booking_days=int(lesson_settings.advance_booking_days),
            min_notice_hours=int(lesson_settings.min_notice_hours),
        )

    # Individual checks

    def _check_within_availability(
        self, teacher_id: str, day_of_week: int, start_min: int, end_min: int
    ) -> BookingCheck:
        for window in self.repository.get_active_windows(teacher_id, day_of_week):
            window_start = hhmm_to_minutes(window.start_time)
            window_end = hhmm_to_minutes(window.end_time, is_end_time=True)
            if window_start <= start_min and end_min <= window_end:
                return BookingCheck.ok()
        return BookingCheck.reject(
            BookingReason.NOT_AVAILABLE,
            f"Teacher is not available on {day_name(day_of_week)} "
            f"{minutes_to_time_str(start_min)}-{minutes_to_time_str(end_min)}",
            day_of_week=day_of_week,
            start_time=minutes_to_time_str(start_min),
            end_time=minutes_to_time_str(end_min),
        )

    def _check_not_blocked(self, teacher_id: str, start: datetime, end: datetime) -> BookingCheck:
        blocked = self.repository.get_blocked_times_overlapping(teacher_id, start, end)
        if not blocked:
            return BookingCheck.ok()
        first = blocked[0]
        return BookingCheck.reject(
            BookingReason.BLOCKED,
            "Teacher has blocked this time" + (f": {first.reason}" if first.reason else ""),
            blocked_time_id=first.id,
            blocked_start=ensure_utc(first.start_time).isoformat(),
            blocked_end=ensure_utc(first.end_time).isoformat(),
        )

    def _find_lesson_conflict(
        self,
        teacher_id: str,
        ranges: List[Tuple[datetime, datetime]],
        exclude_slot_id: Optional[str],
    ) -> Optional[BookingCheck]:
        if not ranges:
            return None
        window_start = ranges[0][0] - timedelta(minutes=MAX_LESSON_MINUTES)
        window_end = ranges[-1][1]
        lessons = self.repository.get_scheduled_lessons_between(
            teacher_id, window_start, window_end, exclude_slot_id
        )
        for lesson in lessons:
            lesson_start = ensure_utc(lesson.date)
            lesson_end = lesson_start + timedelta(minutes=lesson.duration_minutes)
            for start, end in ranges:
                if ranges_overlap(start, end, lesson_start, lesson_end):
                    return BookingCheck.reject(
                        BookingReason.CONFLICT,
                        "This time overlaps a scheduled lesson",
                        lesson_id=lesson.id,
                        conflicting_start=lesson_start.isoformat(),
                        conflicting_end=lesson_end.isoformat(),
                    )
        return None

    def _find_weekly_lesson_conflict(
        self,
        teacher_id: str,
        day_of_week: int,
        wall_time: time,
        duration_minutes: int,
        first_start: datetime,
        tz_name: str,
        exclude_slot_id: Optional[str],
    ) -> Optional[BookingCheck]:
        """
        First SCHEDULED lesson, however far ahead, that some occurrence of
        the weekly pattern from ``first_start`` onwards would overlap.
        """
        lessons = self.repository.get_scheduled_lessons_from(
            teacher_id, first_start - timedelta(minutes=MAX_LESSON_MINUTES), exclude_slot_id
        )
        for lesson in lessons:
            lesson_start = ensure_utc(lesson.date)
            lesson_end = lesson_start + timedelta(minutes=lesson.duration_minutes)
            local_date = convert_to_timezone(lesson_start, tz_name).date()
            # An occurrence on the previous local day can still run into the lesson
            for start, end in occurrence_ranges(
                day_of_week,
                wall_time,
                duration_minutes,
                local_date - timedelta(days=1),
                convert_to_timezone(lesson_end, tz_name).date(),
                tz_name,
            ):
                if start >= first_start and ranges_overlap(start, end, lesson_start, lesson_end):
                    return BookingCheck.reject(
                        BookingReason.CONFLICT,
                        "This time overlaps a scheduled lesson",
                        lesson_id=lesson.id,
                        conflicting_start=lesson_start.isoformat(),
                        conflicting_end=lesson_end.isoformat(),
                    )
        return None

    def _check_booking_window(
        self, first_start: datetime, policy: BookingPolicy
    ) -> BookingCheck:
        now = ensure_utc(self.clock())
        earliest = now + timedelta(hours=policy.min_notice_hours)
        latest = now + timedelta(days=policy.advance_booking_days)
        if first_start < earliest:
            return BookingCheck.reject(
                BookingReason.OUT_OF_WINDOW,
                f"Bookings require at least {policy.min_notice_hours} hours notice"
                if policy.min_notice_hours
                else "Cannot book a time in the past",
                first_lesson=first_start.isoformat(),
                earliest=earliest.isoformat(),
            )
        if first_start > latest:
            return BookingCheck.reject(
                BookingReason.OUT_OF_WINDOW,
                f"Bookings can only be made up to {policy.advance_booking_days} days in advance",
                first_lesson=first_start.isoformat(),
                latest=latest.isoformat(),
            )
        return BookingCheck.ok()

    # Public API

    @BaseService.measure_operation("can_book")
    def can_book(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        exclude_slot_id: Optional[str] = None,
    ) -> BookingCheck:
        """
        Check a concrete ``[start, end)`` UTC range for one teacher.

        Raises:
            ValidationException: If the range is empty or inverted
            NotFoundException: If the teacher does not exist
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            raise ValidationException("end must be after start", code="INVALID_TIME_RANGE")
        teacher = self._get_teacher(teacher_id)
        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)

        local_start = convert_to_timezone(start, teacher.timezone)
        local_end = convert_to_timezone(end, teacher.timezone)
        day_of_week = day_of_week_for(local_start.date())
        start_min = time_to_minutes(local_start.time())
        if local_end.date() == local_start.date():
            end_min = time_to_minutes(local_end.time())
        elif local_end.date() == local_start.date() + timedelta(days=1) and local_end.time() == time(0, 0):
            end_min = MINUTES_PER_DAY
        else:
            end_min = MINUTES_PER_DAY + 1  # Crosses midnight: no window can contain it

        check = self._check_within_availability(teacher_id, day_of_week, start_min, end_min)
        if not check.allowed:
            return check

        check = self._check_not_blocked(teacher_id, start, end)
        if not check.allowed:
            return check

        local_date = local_start.date()
        for slot in self.repository.get_active_slots(
            teacher_id, exclude_slot_id=exclude_slot_id
        ):
            for slot_start, slot_end in occurrence_ranges(
                slot.day_of_week,
                slot.start_time,
                slot.duration_minutes,
                local_date - timedelta(days=1),
                local_date + timedelta(days=1),
                slot.timezone,
            ):
                if ranges_overlap(start, end, slot_start, slot_end):
                    return BookingCheck.reject(
                        BookingReason.CONFLICT,
                        f"This time overlaps the weekly {day_name(slot.day_of_week)} "
                        f"{slot.start_time} lesson",
                        slot_id=slot.id,
                        conflicting_start=slot_start.isoformat(),
                        conflicting_end=slot_end.isoformat(),
                    )

        conflict = self._find_lesson_conflict(teacher_id, [(start, end)], exclude_slot_id)
        if conflict is not None:
            return conflict

        return self._check_booking_window(start, self.get_policy(lesson_settings))

    @BaseService.measure_operation("can_book_recurring")
    def can_book_recurring(
        self,
        teacher_id: str,
        day_of_week: int,
        start_time: str,
        duration_minutes: int,
        first_date: Optional[date] = None,
        exclude_slot_id: Optional[str] = None,
    ) -> BookingCheck:
        """
        Check a weekly candidate pattern for one teacher.

        Blocked time and the booking window are evaluated against the first
        occurrence (on or after ``first_date`` when given, otherwise the next
        occurrence after the minimum-notice cutoff). Lesson overlap is checked
        against every SCHEDULED lesson from the first occurrence onwards.

        Raises:
            ValidationException: On a malformed pattern
            NotFoundException: If the teacher does not exist
        """
        wall_time = _validate_pattern(day_of_week, start_time, duration_minutes)
        teacher = self._get_teacher(teacher_id)
        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        policy = self.get_policy(lesson_settings)
        tz_name = teacher.timezone

        start_min = time_to_minutes(wall_time)
        end_min = start_min + duration_minutes

        check = self._check_within_availability(teacher_id, day_of_week, start_min, end_min)
        if not check.allowed:
            return check

        now = ensure_utc(self.clock())
        if first_date is not None:
            first_start = occurrences_in_range(
                day_of_week, wall_time, duration_minutes, first_date, first_date + timedelta(days=6), tz_name
            )[0]
        else:
            first_start = next_occurrence(
                day_of_week,
                wall_time,
                duration_minutes,
                now + timedelta(hours=policy.min_notice_hours),
                tz_name,
            )
        first_end = first_start + timedelta(minutes=duration_minutes)

        check = self._check_not_blocked(teacher_id, first_start, first_end)
        if not check.allowed:
            return check

        for slot in self.repository.get_active_slots(
            teacher_id, day_of_week=day_of_week, exclude_slot_id=exclude_slot_id
        ):
            slot_start = hhmm_to_minutes(slot.start_time)
            if ranges_overlap(start_min, end_min, slot_start, slot_start + slot.duration_minutes):
                return BookingCheck.reject(
                    BookingReason.CONFLICT,
                    f"{day_name(day_of_week)} {format_hhmm(wall_time)} overlaps an existing weekly "
                    f"lesson at {slot.start_time}",
                    slot_id=slot.id,
                    conflicting_start_time=slot.start_time,
                    conflicting_duration_minutes=slot.duration_minutes,
                )

        conflict = self._find_weekly_lesson_conflict(
            teacher_id, day_of_week, wall_time, duration_minutes, first_start, tz_name, exclude_slot_id
        )
        if conflict is not None:
            return conflict

        return self._check_booking_window(first_start, policy)

    @BaseService.measure_operation("list_available_slots")
    def list_available_slots(self, teacher_id: str) -> List[AvailableSlot]:
        """
        Bookable weekly candidates: 30-minute steps inside active windows, for
        each offered duration, skipping overlaps with ACTIVE slots.
        """
        self._get_teacher(teacher_id)
        lesson_settings = self.teacher_repository.get_lesson_settings(teacher_id)
        billing_model = BillingModel(
            lesson_settings.billing_model if lesson_settings else BillingModel.MONTHLY.value
        )
        durations = [
            d
            for d in ALLOWED_DURATIONS
            if lesson_settings is None or lesson_settings.offers_duration(d)
        ]

        taken: Dict[int, List[Tuple[int, int]]] = {}
        for slot in self.repository.get_active_slots(teacher_id):
            slot_start = hhmm_to_minutes(slot.start_time)
            taken.setdefault(slot.day_of_week, []).append(
                (slot_start, slot_start + slot.duration_minutes)
            )

        candidates: List[AvailableSlot] = []
        for window in self.repository.get_active_windows(teacher_id):
            window_start = hhmm_to_minutes(window.start_time)
            window_end = hhmm_to_minutes(window.end_time, is_end_time=True)
            for duration in durations:
                price = lesson_settings.price_for(duration) if lesson_settings else 0
                monthly_rate, per_lesson_rate = derive_slot_rates(price, billing_model)
                start_min = window_start
                while start_min + duration <= window_end:
                    end_min = start_min + duration
                    if not any(
                        ranges_overlap(start_min, end_min, t_start, t_end)
                        for t_start, t_end in taken.get(window.day_of_week, [])
                    ):
                        candidates.append(
                            AvailableSlot(
                                day_of_week=window.day_of_week,
                                start_time=minutes_to_time_str(start_min),
                                duration_minutes=duration,
                                monthly_rate=monthly_rate,
                                per_lesson_rate=per_lesson_rate,
                            )
                        )
                    start_min += CANDIDATE_STEP_MINUTES
        return candidates
