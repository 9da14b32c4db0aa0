# backend/lessonloop/repositories/recurring_slot_repository.py
"""
Recurring slot and slot subscription data access.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.enums import SlotStatus
from ..core.exceptions import RepositoryException
from ..models.billing import MonthlyBilling
from ..models.lesson import Lesson
from ..models.recurring_slot import RecurringSlot, SlotSubscription
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class RecurringSlotRepository(BaseRepository[RecurringSlot]):
    def __init__(self, db: Session):
        super().__init__(db, RecurringSlot)

    def get_with_subscriptions(self, slot_id: str) -> Optional[RecurringSlot]:
        try:
            return cast(
                Optional[RecurringSlot],
                self.db.query(RecurringSlot)
                .options(selectinload(RecurringSlot.subscriptions))
                .filter(RecurringSlot.id == slot_id)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to load slot: {str(e)}")

    def list_slots(
        self,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[SlotStatus] = None,
    ) -> List[RecurringSlot]:
        try:
            query = self.db.query(RecurringSlot).options(selectinload(RecurringSlot.subscriptions))
            if teacher_id:
                query = query.filter(RecurringSlot.teacher_id == teacher_id)
            if student_id:
                query = query.filter(RecurringSlot.student_id == student_id)
            if status is not None:
                query = query.filter(RecurringSlot.status == status.value)
            return cast(
                List[RecurringSlot],
                query.order_by(
                    RecurringSlot.day_of_week, RecurringSlot.start_time, RecurringSlot.id
                ).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing slots: {str(e)}")
            raise RepositoryException(f"Failed to list slots: {str(e)}")

    def get_active_slots(
        self, teacher_id: Optional[str] = None, slot_id: Optional[str] = None
    ) -> List[RecurringSlot]:
        """ACTIVE slots for a teacher, or the single slot if it is ACTIVE."""
        try:
            query = self.db.query(RecurringSlot).filter(
                RecurringSlot.status == SlotStatus.ACTIVE.value
            )
            if teacher_id:
                query = query.filter(RecurringSlot.teacher_id == teacher_id)
            if slot_id:
                query = query.filter(RecurringSlot.id == slot_id)
            return cast(List[RecurringSlot], query.order_by(RecurringSlot.id).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting active slots: {str(e)}")
            raise RepositoryException(f"Failed to get active slots: {str(e)}")

    def get_teacher_ids_with_active_slots(self) -> List[str]:
        try:
            rows = (
                self.db.query(RecurringSlot.teacher_id)
                .filter(RecurringSlot.status == SlotStatus.ACTIVE.value)
                .distinct()
                .order_by(RecurringSlot.teacher_id)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting teachers with active slots: {str(e)}")
            raise RepositoryException(f"Failed to get teachers: {str(e)}")

    def count_lessons(self, slot_id: str) -> int:
        try:
            return int(
                self.db.query(func.count(Lesson.id)).filter(Lesson.slot_id == slot_id).scalar() or 0
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting lessons for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to count lessons: {str(e)}")

    def count_billing_records(self, slot_id: str) -> int:
        try:
            return int(
                self.db.query(func.count(MonthlyBilling.id))
                .join(SlotSubscription, SlotSubscription.id == MonthlyBilling.subscription_id)
                .filter(SlotSubscription.slot_id == slot_id)
                .scalar()
                or 0
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting billing for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to count billing records: {str(e)}")


class SlotSubscriptionRepository(BaseRepository[SlotSubscription]):
    def __init__(self, db: Session):
        super().__init__(db, SlotSubscription)

    def get_ids_for_slot(self, slot_id: str) -> List[str]:
        try:
            rows = self.db.query(SlotSubscription.id).filter(SlotSubscription.slot_id == slot_id).all()
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading subscription ids for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to load subscriptions: {str(e)}")
