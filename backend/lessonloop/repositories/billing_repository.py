# backend/lessonloop/repositories/billing_repository.py
"""
Monthly billing data access.
"""

from datetime import datetime
import logging
from typing import List, Optional, Sequence, Tuple, cast

from sqlalchemy import and_, exists, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import BILLABLE_SUBSCRIPTION_STATUSES, BillingStatus
from ..core.exceptions import RepositoryException
from ..models.billing import MonthlyBilling
from ..models.recurring_slot import RecurringSlot, SlotSubscription
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BillingRepository(BaseRepository[MonthlyBilling]):
    def __init__(self, db: Session):
        super().__init__(db, MonthlyBilling)

    def get_for_subscription_month(self, subscription_id: str, month: str) -> Optional[MonthlyBilling]:
        return self.find_one_by(subscription_id=subscription_id, month=month)

    def get_unbilled_subscriptions(self, month: str) -> List[Tuple[SlotSubscription, RecurringSlot]]:
        """
        Billable subscriptions covering ``month`` that have no billing record for it.

        EXPIRED subscriptions still bill the months before a rate change.

        Returns (subscription, slot) pairs ordered by subscription id.
        """
        try:
            already_billed = exists().where(
                and_(
                    MonthlyBilling.subscription_id == SlotSubscription.id,
                    MonthlyBilling.month == month,
                )
            )
            rows = (
                self.db.query(SlotSubscription, RecurringSlot)
                .join(RecurringSlot, RecurringSlot.id == SlotSubscription.slot_id)
                .filter(
                    SlotSubscription.status.in_(BILLABLE_SUBSCRIPTION_STATUSES),
                    SlotSubscription.start_month <= month,
                    or_(SlotSubscription.end_month.is_(None), SlotSubscription.end_month >= month),
                    ~already_billed,
                )
                .order_by(SlotSubscription.id)
                .all()
            )
            return [(row[0], row[1]) for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting unbilled subscriptions for {month}: {str(e)}")
            raise RepositoryException(f"Failed to get subscriptions: {str(e)}")

    def increment_actual_lessons(self, subscription_ids: Sequence[str], month: str) -> int:
        """
        Atomically add one completed lesson to the open record for ``month``.

        The ``actual_lessons < expected_lessons`` guard keeps the counter capped.
        """
        if not subscription_ids:
            return 0
        try:
            stmt = (
                update(MonthlyBilling)
                .where(
                    MonthlyBilling.subscription_id.in_(list(subscription_ids)),
                    MonthlyBilling.month == month,
                    MonthlyBilling.status != BillingStatus.CANCELLED.value,
                    MonthlyBilling.actual_lessons < MonthlyBilling.expected_lessons,
                )
                .values(actual_lessons=MonthlyBilling.actual_lessons + 1)
                .execution_options(synchronize_session="fetch")
            )
            return int(self.db.execute(stmt).rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error incrementing actual lessons for {month}: {str(e)}")
            raise RepositoryException(f"Failed to update billing: {str(e)}")

    def cancel_pending_after(
        self, subscription_ids: Sequence[str], after_month: str, cancelled_at: datetime
    ) -> int:
        """Cancel PENDING records for months strictly after ``after_month``."""
        if not subscription_ids:
            return 0
        try:
            stmt = (
                update(MonthlyBilling)
                .where(
                    MonthlyBilling.subscription_id.in_(list(subscription_ids)),
                    MonthlyBilling.month > after_month,
                    MonthlyBilling.status == BillingStatus.PENDING.value,
                )
                .values(status=BillingStatus.CANCELLED.value, cancelled_at=cancelled_at)
                .execution_options(synchronize_session="fetch")
            )
            return int(self.db.execute(stmt).rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error cancelling pending billing: {str(e)}")
            raise RepositoryException(f"Failed to cancel billing: {str(e)}")

    def get_billed_before(self, cutoff: datetime) -> List[MonthlyBilling]:
        """BILLED records invoiced before ``cutoff`` (candidates for OVERDUE)."""
        try:
            return cast(
                List[MonthlyBilling],
                self.db.query(MonthlyBilling)
                .filter(
                    MonthlyBilling.status == BillingStatus.BILLED.value,
                    MonthlyBilling.billed_at.isnot(None),
                    MonthlyBilling.billed_at < cutoff,
                )
                .order_by(MonthlyBilling.billed_at)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting billed records: {str(e)}")
            raise RepositoryException(f"Failed to get billing records: {str(e)}")

    def list_for_month(
        self,
        month: str,
        teacher_id: Optional[str] = None,
        student_id: Optional[str] = None,
        status: Optional[BillingStatus] = None,
    ) -> List[MonthlyBilling]:
        try:
            query = self.db.query(MonthlyBilling).filter(MonthlyBilling.month == month)
            if teacher_id:
                query = query.filter(MonthlyBilling.teacher_id == teacher_id)
            if student_id:
                query = query.filter(MonthlyBilling.student_id == student_id)
            if status is not None:
                query = query.filter(MonthlyBilling.status == status.value)
            return cast(List[MonthlyBilling], query.order_by(MonthlyBilling.id).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing billing for {month}: {str(e)}")
            raise RepositoryException(f"Failed to list billing records: {str(e)}")
