# backend/lessonloop/repositories/teacher_repository.py
"""
Teacher and student profile data access.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.student import StudentProfile
from ..models.teacher import TeacherLessonSettings, TeacherProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TeacherRepository(BaseRepository[TeacherProfile]):
    def __init__(self, db: Session):
        super().__init__(db, TeacherProfile)

    def get_lesson_settings(self, teacher_id: str) -> Optional[TeacherLessonSettings]:
        try:
            return cast(
                Optional[TeacherLessonSettings],
                self.db.query(TeacherLessonSettings)
                .filter(TeacherLessonSettings.teacher_id == teacher_id)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading lesson settings for {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to load lesson settings: {str(e)}")

    def list_active(self) -> List[TeacherProfile]:
        try:
            return cast(
                List[TeacherProfile],
                self.db.query(TeacherProfile)
                .filter(TeacherProfile.is_active.is_(True))
                .order_by(TeacherProfile.id)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing teachers: {str(e)}")
            raise RepositoryException(f"Failed to list teachers: {str(e)}")


class StudentRepository(BaseRepository[StudentProfile]):
    def __init__(self, db: Session):
        super().__init__(db, StudentProfile)
