# backend/lessonloop/services/lesson_generator.py
"""
Lesson Occurrence Generator for LessonLoop

Materializes concrete Lesson rows from ACTIVE recurring slots for a forward
horizon. Generation is idempotent: existing ``(slot_id, date)`` pairs are
looked up first and every insert is conflict-tolerant, so re-running any
range (or racing another run for the same teacher) never duplicates lessons.

The daily batch runs one transaction per teacher; a failing teacher is
logged and reported in ``errors`` without affecting the others.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session
import ulid

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import BILLABLE_SUBSCRIPTION_STATUSES, JobName, LessonStatus
from ..core.exceptions import NotFoundException, PartialBatchException, ValidationException
from ..core.timezone_utils import ensure_utc, localize_wall_clock
from ..domain.months import month_bounds
from ..domain.occurrences import ALLOWED_DURATIONS, occurrences_in_range, ranges_overlap
from ..models.lesson import Lesson
from ..models.recurring_slot import RecurringSlot
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

MAX_LESSON_MINUTES = max(ALLOWED_DURATIONS)


@dataclass
class GenerationJobResult:
    success: bool
    lessons_generated: int
    teachers_processed: int
    range_start: date
    range_end: date
    errors: List[str] = field(default_factory=list)


class LessonGenerator(BaseService):
    """Idempotent generator of recurring lesson occurrences."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.slot_repository = RepositoryFactory.create_recurring_slot_repository(db)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.job_log_repository = RepositoryFactory.create_job_log_repository(db)
        self.conflict_repository = RepositoryFactory.create_conflict_checker_repository(db)

    def _clip_to_subscription(
        self, slot: RecurringSlot, range_start: date, range_end: date
    ) -> tuple[date, date]:
        """
        Never generate outside the months the slot's subscriptions cover.

        EXPIRED subscriptions count: after a rate change the months before
        the new rate are still owed lessons.
        """
        covering = [s for s in slot.subscriptions if s.status in BILLABLE_SUBSCRIPTION_STATUSES]
        if not covering:
            return range_start, range_end
        start = max(range_start, month_bounds(min(s.start_month for s in covering))[0])
        end = range_end
        if all(s.end_month for s in covering):
            end = min(range_end, month_bounds(max(s.end_month for s in covering))[1])
        return start, end

    def _generate_for_slot(self, slot: RecurringSlot, range_start: date, range_end: date) -> int:
        start, end = self._clip_to_subscription(slot, range_start, range_end)
        occurrences = occurrences_in_range(
            slot.day_of_week, slot.start_time, slot.duration_minutes, start, end, slot.timezone
        )
        if not occurrences:
            return 0

        now = ensure_utc(self.clock())
        existing = self.lesson_repository.get_existing_dates(slot.id, occurrences[0], occurrences[-1])
        duration = timedelta(minutes=slot.duration_minutes)
        others = [
            (ensure_utc(lesson.date), ensure_utc(lesson.date) + timedelta(minutes=lesson.duration_minutes))
            for lesson in self.conflict_repository.get_scheduled_lessons_between(
                slot.teacher_id,
                occurrences[0] - timedelta(minutes=MAX_LESSON_MINUTES),
                occurrences[-1] + duration,
                exclude_slot_id=slot.id,
            )
        ]
        created = 0
        # Chronological order within the slot
        for occurrence in occurrences:
            if occurrence < now or occurrence in existing:
                continue
            if any(ranges_overlap(occurrence, occurrence + duration, a, b) for a, b in others):
                self.logger.warning(
                    "Skipping lesson for slot %s at %s: overlaps another scheduled lesson",
                    slot.id,
                    occurrence,
                )
                continue
            inserted = self.lesson_repository.insert_if_absent(
                {
                    "id": str(ulid.ULID()),
                    "teacher_id": slot.teacher_id,
                    "student_id": slot.student_id,
                    "date": occurrence,
                    "duration_minutes": slot.duration_minutes,
                    "timezone": slot.timezone,
                    "status": LessonStatus.SCHEDULED.value,
                    "is_recurring": True,
                    "slot_id": slot.id,
                    "version": 1,
                    "created_at": now,
                }
            )
            if inserted:
                created += 1
            else:
                self.logger.debug("Lesson for slot %s at %s already generated", slot.id, occurrence)
        return created

    @BaseService.measure_operation("generate_lessons")
    def generate_lessons(
        self,
        *,
        teacher_id: Optional[str] = None,
        slot_id: Optional[str] = None,
        range_start: date,
        range_end: date,
    ) -> int:
        """
        Insert missing lessons for ACTIVE slots of a teacher (or one slot).

        Dates are local to each slot's timezone and inclusive on both ends.
        Occurrences already in the past are skipped. Does not commit.

        Returns:
            Number of lessons created
        """
        if not teacher_id and not slot_id:
            raise ValidationException("teacher_id or slot_id is required", code="MISSING_SCOPE")
        if range_end < range_start:
            raise ValidationException("range_end must not be before range_start", code="INVALID_RANGE")

        created = 0
        for slot in self.slot_repository.get_active_slots(teacher_id=teacher_id, slot_id=slot_id):
            created += self._generate_for_slot(slot, range_start, range_end)

        if created:
            self.logger.info(
                "Generated %d lessons",
                created,
                extra={"teacher_id": teacher_id, "slot_id": slot_id},
            )
        prometheus_metrics.record_lessons_generated(created)
        return created

    @BaseService.measure_operation("generate_future_lessons")
    def generate_future_lessons(
        self, range_start: Optional[date] = None, range_end: Optional[date] = None
    ) -> GenerationJobResult:
        """
        Batch entry point: extend every teacher's horizon.

        Defaults to today .. today + ``generation_horizon_weeks``. Each teacher
        is its own transaction; failures are collected, never raised.
        """
        job_name = JobName.GENERATE_LESSONS.value
        start = range_start or ensure_utc(self.clock()).date()
        end = range_end or start + timedelta(weeks=settings.generation_horizon_weeks)
        if end < start:
            raise ValidationException("range_end must not be before range_start", code="INVALID_RANGE")

        self.logger.info("Starting %s for %s..%s", job_name, start, end)
        result = GenerationJobResult(
            success=True, lessons_generated=0, teachers_processed=0, range_start=start, range_end=end
        )

        for teacher_id in self.slot_repository.get_teacher_ids_with_active_slots():
            try:
                with self.transaction():
                    created = self.generate_lessons(
                        teacher_id=teacher_id, range_start=start, range_end=end
                    )
                result.lessons_generated += created
                result.teachers_processed += 1
            except Exception as exc:
                error = PartialBatchException(job_name, f"teacher {teacher_id}", exc)
                self.logger.error(str(error), exc_info=True)
                result.errors.append(str(error))

        result.success = not result.errors
        self._record_run(job_name, result, {"range_start": start.isoformat(), "range_end": end.isoformat()})
        self.logger.info(
            "Finished %s: %d lessons for %d teachers, %d errors",
            job_name,
            result.lessons_generated,
            result.teachers_processed,
            len(result.errors),
        )
        return result

    def _record_run(self, job_name: str, result: GenerationJobResult, parameters: dict) -> None:
        prometheus_metrics.record_batch_run(job_name, result.success)
        try:
            with self.transaction():
                self.job_log_repository.record(
                    job_name=job_name,
                    executed_at=ensure_utc(self.clock()),
                    success=result.success,
                    units_processed=result.teachers_processed,
                    records_created=result.lessons_generated,
                    errors=result.errors,
                    parameters=parameters,
                )
        except Exception:
            # The run itself already committed per teacher
            self.logger.error("Failed to record %s run history", job_name, exc_info=True)

    @BaseService.measure_operation("get_lessons_with_recurring")
    def get_lessons_with_recurring(
        self, teacher_id: str, range_start: date, range_end: date
    ) -> List[Lesson]:
        """Generate any missing recurring lessons, then list SCHEDULED/COMPLETED lessons."""
        teacher = self.teacher_repository.get_by_id(teacher_id)
        if teacher is None:
            raise NotFoundException(f"Teacher {teacher_id} not found", code="TEACHER_NOT_FOUND")

        with self.transaction():
            self.generate_lessons(teacher_id=teacher_id, range_start=range_start, range_end=range_end)

        window_start: datetime = localize_wall_clock(range_start, time(0, 0), teacher.timezone)
        window_end: datetime = localize_wall_clock(
            range_end + timedelta(days=1), time(0, 0), teacher.timezone
        ) - timedelta(microseconds=1)
        return self.lesson_repository.list_for_teacher(teacher_id, window_start, window_end)
