# backend/lessonloop/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for LessonLoop

Read-only queries behind the booking checks: weekly availability windows,
blocked time, ACTIVE recurring slots and SCHEDULED lessons. All datetime
parameters are UTC.
"""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import LessonStatus, SlotStatus
from ..core.exceptions import RepositoryException
from ..models.availability import BlockedTime, TeacherAvailability
from ..models.lesson import Lesson
from ..models.recurring_slot import RecurringSlot
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[RecurringSlot]):
    """
    Repository for conflict checking data access.

    Works across availability, blocked time, slots and lessons so the
    conflict checker itself never builds queries.
    """

    def __init__(self, db: Session):
        super().__init__(db, RecurringSlot)
        self.logger = logging.getLogger(__name__)

    # Availability

    def get_active_windows(
        self, teacher_id: str, day_of_week: Optional[int] = None
    ) -> List[TeacherAvailability]:
        """Active weekly windows, optionally for one weekday, ordered by start."""
        try:
            query = self.db.query(TeacherAvailability).filter(
                TeacherAvailability.teacher_id == teacher_id,
                TeacherAvailability.is_active.is_(True),
            )
            if day_of_week is not None:
                query = query.filter(TeacherAvailability.day_of_week == day_of_week)
            return cast(
                List[TeacherAvailability],
                query.order_by(TeacherAvailability.day_of_week, TeacherAvailability.start_time).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting availability windows: {str(e)}")
            raise RepositoryException(f"Failed to get availability: {str(e)}")

    # Blocked time

    def get_blocked_times_overlapping(
        self, teacher_id: str, start: datetime, end: datetime
    ) -> List[BlockedTime]:
        """Blocked periods intersecting ``[start, end)``."""
        try:
            return cast(
                List[BlockedTime],
                self.db.query(BlockedTime)
                .filter(
                    BlockedTime.teacher_id == teacher_id,
                    BlockedTime.start_time < end,
                    BlockedTime.end_time > start,
                )
                .order_by(BlockedTime.start_time)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting blocked times: {str(e)}")
            raise RepositoryException(f"Failed to get blocked times: {str(e)}")

    # Slots

    def get_active_slots(
        self,
        teacher_id: str,
        day_of_week: Optional[int] = None,
        exclude_slot_id: Optional[str] = None,
    ) -> List[RecurringSlot]:
        try:
            query = self.db.query(RecurringSlot).filter(
                RecurringSlot.teacher_id == teacher_id,
                RecurringSlot.status == SlotStatus.ACTIVE.value,
            )
            if day_of_week is not None:
                query = query.filter(RecurringSlot.day_of_week == day_of_week)
            if exclude_slot_id:
                query = query.filter(RecurringSlot.id != exclude_slot_id)
            return cast(List[RecurringSlot], query.order_by(RecurringSlot.start_time).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting active slots: {str(e)}")
            raise RepositoryException(f"Failed to get active slots: {str(e)}")

    # Lessons

    def get_scheduled_lessons_between(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        exclude_slot_id: Optional[str] = None,
    ) -> List[Lesson]:
        """
        SCHEDULED lessons starting before ``end`` and no earlier than
        ``start`` minus the longest lesson, so callers can test overlap in Python.
        """
        try:
            query = self.db.query(Lesson).filter(
                Lesson.teacher_id == teacher_id,
                Lesson.status == LessonStatus.SCHEDULED.value,
                Lesson.date < end,
                Lesson.date >= start,
            )
            if exclude_slot_id:
                query = query.filter((Lesson.slot_id.is_(None)) | (Lesson.slot_id != exclude_slot_id))
            return cast(List[Lesson], query.order_by(Lesson.date).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting scheduled lessons: {str(e)}")
            raise RepositoryException(f"Failed to get scheduled lessons: {str(e)}")

    def get_scheduled_lessons_from(
        self,
        teacher_id: str,
        start: datetime,
        exclude_slot_id: Optional[str] = None,
    ) -> List[Lesson]:
        """Every SCHEDULED lesson of the teacher starting at or after ``start``."""
        try:
            query = self.db.query(Lesson).filter(
                Lesson.teacher_id == teacher_id,
                Lesson.status == LessonStatus.SCHEDULED.value,
                Lesson.date >= start,
            )
            if exclude_slot_id:
                query = query.filter((Lesson.slot_id.is_(None)) | (Lesson.slot_id != exclude_slot_id))
            return cast(List[Lesson], query.order_by(Lesson.date).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting future scheduled lessons: {str(e)}")
            raise RepositoryException(f"Failed to get scheduled lessons: {str(e)}")
