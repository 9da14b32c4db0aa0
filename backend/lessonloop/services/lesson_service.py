# backend/lessonloop/services/lesson_service.py
"""
Lesson Service for LessonLoop

Edits to individual lessons go through an optimistic lock on
``Lesson.version``: a write names the version it was based on and is applied
with a single conditional UPDATE. A stale version is rejected with
VersionConflictException carrying both versions, never silently overwritten.

``update_with_retry`` re-reads the lesson and re-applies the caller's intent
for a bounded number of attempts with exponential backoff.
"""

from datetime import datetime, timedelta
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import LessonStatus
from ..core.exceptions import (
    BusinessRuleException,
    InvalidStatusTransitionException,
    NotFoundException,
    ValidationException,
    VersionConflictException,
)
from ..core.timezone_utils import ensure_utc
from ..domain.occurrences import validate_duration
from ..models.lesson import Lesson
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories import RepositoryFactory
from .base import BaseService
from .billing_service import BillingService
from .conflict_checker import ConflictChecker

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"notes", "status", "duration_minutes"})

PatchBuilder = Callable[[Lesson], Mapping[str, Any]]


class LessonService(BaseService):
    """Version-guarded lesson edits and single (non-recurring) bookings."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        billing_service: Optional[BillingService] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db, clock)
        self.lesson_repository = RepositoryFactory.create_lesson_repository(db)
        self.student_repository = RepositoryFactory.create_student_repository(db)
        self.teacher_repository = RepositoryFactory.create_teacher_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, clock=self.clock)
        self.billing_service = billing_service or BillingService(db, clock=self.clock)
        self._sleep = sleep

    def get_lesson(self, lesson_id: str) -> Lesson:
        lesson = self.lesson_repository.get_for_update(lesson_id)
        if lesson is None:
            raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
        return lesson

    def _build_values(self, lesson: Lesson, patch: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
        reason = patch.get("cancellation_reason")
        patch = {key: value for key, value in patch.items() if key != "cancellation_reason"}
        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationException(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}",
                code="INVALID_PATCH",
                details={"fields": sorted(unknown)},
            )
        if not patch:
            raise ValidationException("Patch is empty", code="INVALID_PATCH")

        values: Dict[str, Any] = {"updated_at": now}
        if "notes" in patch:
            values["notes"] = patch["notes"]
        if "duration_minutes" in patch:
            try:
                values["duration_minutes"] = validate_duration(patch["duration_minutes"])
            except ValueError as exc:
                raise ValidationException(str(exc), code="INVALID_PATCH") from exc
        if "status" in patch:
            try:
                target = LessonStatus(patch["status"])
            except ValueError as exc:
                raise ValidationException(
                    f"Unknown lesson status: {patch['status']}", code="INVALID_PATCH"
                ) from exc
            current = LessonStatus(lesson.status)
            if target is not current:
                # Restoring CANCELLED -> SCHEDULED is reserved for slot reactivation
                if current is not LessonStatus.SCHEDULED or not current.can_transition_to(target):
                    raise InvalidStatusTransitionException("lesson", current.value, target.value)
                values["status"] = target.value
                if target is LessonStatus.COMPLETED:
                    values["completed_at"] = now
                elif target is LessonStatus.CANCELLED:
                    values["cancelled_at"] = now
                    values["cancellation_reason"] = reason
        return values

    @BaseService.measure_operation("update_lesson")
    def update_with_version(
        self, lesson_id: str, expected_version: int, patch: Mapping[str, Any]
    ) -> Lesson:
        """
        Apply ``patch`` only if the lesson is still at ``expected_version``.

        Raises:
            NotFoundException: Lesson does not exist
            VersionConflictException: Lesson moved past ``expected_version``
            ValidationException / InvalidStatusTransitionException: Bad patch
        """
        now = ensure_utc(self.clock())
        with self.transaction():
            lesson = self.get_lesson(lesson_id)
            if lesson.version != expected_version:
                prometheus_metrics.record_version_conflict("surfaced")
                raise VersionConflictException(int(lesson.version), expected_version)

            values = self._build_values(lesson, patch, now)
            updated = self.lesson_repository.update_versioned(lesson_id, expected_version, values)
            if updated == 0:
                current_version = self.lesson_repository.get_current_version(lesson_id)
                if current_version is None:
                    raise NotFoundException(f"Lesson {lesson_id} not found", code="LESSON_NOT_FOUND")
                prometheus_metrics.record_version_conflict("surfaced")
                raise VersionConflictException(current_version, expected_version)

            lesson = self.get_lesson(lesson_id)
            if values.get("status") == LessonStatus.COMPLETED.value:
                self.billing_service.record_lesson_completed(lesson)

        self.log_operation("lesson_updated", lesson_id=lesson_id, version=lesson.version)
        return lesson

    def update_with_retry(
        self,
        lesson_id: str,
        build_patch: PatchBuilder,
        max_attempts: Optional[int] = None,
    ) -> Lesson:
        """
        Re-read, rebuild the patch from the fresh lesson and retry on conflict.

        ``build_patch`` receives the current lesson on every attempt so the
        caller re-applies its intent instead of replaying stale values.
        """
        attempts = max_attempts or settings.optimistic_lock_max_attempts
        backoff_ms = settings.optimistic_lock_backoff_ms
        if attempts < 1:
            raise ValidationException("max_attempts must be at least 1", code="INVALID_ATTEMPTS")
        current_version = attempted_version = 0

        for attempt in range(attempts):
            lesson = self.get_lesson(lesson_id)
            try:
                return self.update_with_version(lesson_id, int(lesson.version), build_patch(lesson))
            except VersionConflictException as exc:
                current_version, attempted_version = exc.current_version, exc.attempted_version
                if attempt + 1 < attempts:
                    prometheus_metrics.record_version_conflict("retried")
                    self.logger.info(
                        "Version conflict on lesson %s (attempt %d/%d), retrying",
                        lesson_id,
                        attempt + 1,
                        attempts,
                    )
                    self._sleep(backoff_ms * (2**attempt) / 1000)

        self.logger.warning("Giving up on lesson %s after %d attempts", lesson_id, attempts)
        raise VersionConflictException(current_version, attempted_version)

    def complete_lesson(self, lesson_id: str, expected_version: int) -> Lesson:
        return self.update_with_version(
            lesson_id, expected_version, {"status": LessonStatus.COMPLETED.value}
        )

    def cancel_lesson(self, lesson_id: str, expected_version: int, reason: Optional[str] = None) -> Lesson:
        return self.update_with_version(
            lesson_id,
            expected_version,
            {"status": LessonStatus.CANCELLED.value, "cancellation_reason": reason},
        )

    @BaseService.measure_operation("book_single_lesson")
    def book_single_lesson(
        self, teacher_id: str, student_id: str, start: datetime, duration_minutes: int
    ) -> Lesson:
        """Conflict-checked one-off lesson (not tied to a recurring slot)."""
        try:
            validate_duration(duration_minutes)
        except ValueError as exc:
            raise ValidationException(str(exc), code="INVALID_DURATION") from exc
        start = ensure_utc(start)

        student = self.student_repository.get_by_id(student_id)
        if student is None or not student.is_active:
            raise NotFoundException(f"Student {student_id} not found", code="STUDENT_NOT_FOUND")
        if student.teacher_id and student.teacher_id != teacher_id:
            raise BusinessRuleException(
                "Student is not assigned to this teacher", code="STUDENT_NOT_ASSIGNED"
            )

        check = self.conflict_checker.can_book(
            teacher_id, start, start + timedelta(minutes=duration_minutes)
        )
        check.raise_if_rejected()
        teacher = self.teacher_repository.get_by_id(teacher_id)

        with self.transaction():
            lesson = self.lesson_repository.create(
                teacher_id=teacher_id,
                student_id=student_id,
                date=start,
                duration_minutes=duration_minutes,
                timezone=teacher.timezone,
                status=LessonStatus.SCHEDULED.value,
                is_recurring=False,
                version=1,
                created_at=ensure_utc(self.clock()),
            )

        self.log_operation("single_lesson_booked", lesson_id=lesson.id, teacher_id=teacher_id)
        return lesson
