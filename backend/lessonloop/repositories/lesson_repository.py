# backend/lessonloop/repositories/lesson_repository.py
"""
Lesson Repository for LessonLoop

Besides plain reads this repository owns the two writes that carry the
concurrency guarantees for lessons:

- ``insert_if_absent``: idempotent insert keyed on ``(slot_id, date)``
- ``update_versioned``: conditional update keyed on ``(id, version)``
"""

from datetime import datetime
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, cast

from sqlalchemy import insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import LessonStatus
from ..core.exceptions import RepositoryException
from ..core.timezone_utils import ensure_utc
from ..database.session_utils import on_conflict_dialect
from ..models.lesson import Lesson
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

SUSPENSION_REASON = "slot_suspended"


class LessonRepository(BaseRepository[Lesson]):
    def __init__(self, db: Session):
        super().__init__(db, Lesson)

    # Generation

    def get_existing_dates(self, slot_id: str, start: datetime, end: datetime) -> Set[datetime]:
        """UTC start instants already materialized for a slot within ``[start, end]``."""
        try:
            rows = (
                self.db.query(Lesson.date)
                .filter(Lesson.slot_id == slot_id, Lesson.date >= start, Lesson.date <= end)
                .all()
            )
            return {ensure_utc(row[0]) for row in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading existing lesson dates for {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to load lesson dates: {str(e)}")

    def insert_if_absent(self, values: Dict[str, Any]) -> bool:
        """
        Insert one lesson unless ``(slot_id, date)`` already exists.

        PostgreSQL and SQLite use ``ON CONFLICT DO NOTHING``; other dialects
        fall back to a savepoint that swallows the unique violation.

        Returns:
            True if a row was inserted, False if it already existed
        """
        dialect = on_conflict_dialect(self.db)
        try:
            if dialect is not None:
                insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
                stmt = (
                    insert_fn(Lesson)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["slot_id", "date"])
                )
                result = self.db.execute(stmt)
                return bool(result.rowcount == 1)

            savepoint = self.db.begin_nested()
            try:
                self.db.execute(insert(Lesson).values(**values))
                savepoint.commit()
                return True
            except IntegrityError:
                savepoint.rollback()
                return False
        except SQLAlchemyError as e:
            self.logger.error(f"Error inserting lesson for slot {values.get('slot_id')}: {str(e)}")
            raise RepositoryException(f"Failed to insert lesson: {str(e)}")

    # Optimistic locking

    def update_versioned(self, lesson_id: str, expected_version: int, values: Dict[str, Any]) -> int:
        """
        ``UPDATE lessons SET ..., version = version + 1 WHERE id = :id AND version = :expected``.

        Returns:
            Number of rows affected (0 or 1)
        """
        try:
            stmt = (
                update(Lesson)
                .where(Lesson.id == lesson_id, Lesson.version == expected_version)
                .values(**values, version=Lesson.version + 1)
                .execution_options(synchronize_session=False)
            )
            return int(self.db.execute(stmt).rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to update lesson: {str(e)}")

    def get_current_version(self, lesson_id: str) -> Optional[int]:
        try:
            row = self.db.query(Lesson.version).filter(Lesson.id == lesson_id).first()
            return int(row[0]) if row else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading version for lesson {lesson_id}: {str(e)}")
            raise RepositoryException(f"Failed to read lesson version: {str(e)}")

    # Slot cascades

    def cancel_scheduled_from(
        self,
        slot_id: str,
        from_date: datetime,
        cancelled_at: datetime,
        reason: str,
    ) -> int:
        """Cancel the slot's SCHEDULED lessons with ``date >= from_date``; bumps versions."""
        try:
            stmt = (
                update(Lesson)
                .where(
                    Lesson.slot_id == slot_id,
                    Lesson.status == LessonStatus.SCHEDULED.value,
                    Lesson.date >= from_date,
                )
                .values(
                    status=LessonStatus.CANCELLED.value,
                    cancelled_at=cancelled_at,
                    updated_at=cancelled_at,
                    cancellation_reason=reason,
                    version=Lesson.version + 1,
                )
                .execution_options(synchronize_session="fetch")
            )
            return int(self.db.execute(stmt).rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error cancelling lessons for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to cancel lessons: {str(e)}")

    def restore_suspended_from(self, slot_id: str, from_date: datetime, restored_at: datetime) -> int:
        """Put lessons cancelled by a suspension back to SCHEDULED."""
        try:
            stmt = (
                update(Lesson)
                .where(
                    Lesson.slot_id == slot_id,
                    Lesson.status == LessonStatus.CANCELLED.value,
                    Lesson.cancellation_reason == SUSPENSION_REASON,
                    Lesson.date >= from_date,
                )
                .values(
                    status=LessonStatus.SCHEDULED.value,
                    cancelled_at=None,
                    cancellation_reason=None,
                    updated_at=restored_at,
                    version=Lesson.version + 1,
                )
                .execution_options(synchronize_session="fetch")
            )
            return int(self.db.execute(stmt).rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error restoring lessons for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to restore lessons: {str(e)}")

    # Listing

    def list_for_teacher(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[LessonStatus] = (LessonStatus.SCHEDULED, LessonStatus.COMPLETED),
    ) -> List[Lesson]:
        try:
            return cast(
                List[Lesson],
                self.db.query(Lesson)
                .filter(
                    Lesson.teacher_id == teacher_id,
                    Lesson.date >= start,
                    Lesson.date <= end,
                    Lesson.status.in_([s.value for s in statuses]),
                )
                .order_by(Lesson.date)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing lessons for teacher {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to list lessons: {str(e)}")

    def list_for_slot(self, slot_id: str) -> List[Lesson]:
        try:
            return cast(
                List[Lesson],
                self.db.query(Lesson).filter(Lesson.slot_id == slot_id).order_by(Lesson.date).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing lessons for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to list lessons: {str(e)}")
