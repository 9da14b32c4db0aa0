# backend/lessonloop/repositories/factory.py
"""
Repository Factory for LessonLoop

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .billing_repository import BillingRepository
    from .conflict_checker_repository import ConflictCheckerRepository
    from .job_log_repository import JobLogRepository
    from .lesson_repository import LessonRepository
    from .recurring_slot_repository import RecurringSlotRepository, SlotSubscriptionRepository
    from .teacher_repository import StudentRepository, TeacherRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model: Any) -> BaseRepository[Any]:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_teacher_repository(db: Session) -> "TeacherRepository":
        from .teacher_repository import TeacherRepository

        return TeacherRepository(db)

    @staticmethod
    def create_student_repository(db: Session) -> "StudentRepository":
        from .teacher_repository import StudentRepository

        return StudentRepository(db)

    @staticmethod
    def create_conflict_checker_repository(db: Session) -> "ConflictCheckerRepository":
        """Create repository for conflict checking queries."""
        from .conflict_checker_repository import ConflictCheckerRepository

        return ConflictCheckerRepository(db)

    @staticmethod
    def create_recurring_slot_repository(db: Session) -> "RecurringSlotRepository":
        from .recurring_slot_repository import RecurringSlotRepository

        return RecurringSlotRepository(db)

    @staticmethod
    def create_subscription_repository(db: Session) -> "SlotSubscriptionRepository":
        from .recurring_slot_repository import SlotSubscriptionRepository

        return SlotSubscriptionRepository(db)

    @staticmethod
    def create_lesson_repository(db: Session) -> "LessonRepository":
        from .lesson_repository import LessonRepository

        return LessonRepository(db)

    @staticmethod
    def create_billing_repository(db: Session) -> "BillingRepository":
        from .billing_repository import BillingRepository

        return BillingRepository(db)

    @staticmethod
    def create_job_log_repository(db: Session) -> "JobLogRepository":
        from .job_log_repository import JobLogRepository

        return JobLogRepository(db)
