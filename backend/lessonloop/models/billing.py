# backend/lessonloop/models/billing.py
"""
Monthly billing record, one per (subscription, month).

``total_amount`` is fixed at creation ("pay for the reserved slot, not for the
lessons attended"); completed lessons only advance ``actual_lessons``.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import BillingStatus
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class MonthlyBilling(Base):
    __tablename__ = "monthly_billings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    subscription_id = Column(String(26), ForeignKey("slot_subscriptions.id"), nullable=False)
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=False, index=True)
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False, index=True)
    month = Column(String(7), nullable=False, index=True)  # "YYYY-MM"

    expected_lessons = Column(Integer, nullable=False)
    actual_lessons = Column(Integer, nullable=False, default=0)
    rate_per_lesson = Column(Integer, nullable=False)
    total_amount = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default=BillingStatus.PENDING.value, index=True)
    billed_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now_utc)

    subscription = relationship("SlotSubscription", back_populates="billings")

    __table_args__ = (
        UniqueConstraint("subscription_id", "month", name="uq_monthly_billings_subscription_month"),
        CheckConstraint("actual_lessons <= expected_lessons", name="ck_monthly_billings_actual"),
        CheckConstraint("actual_lessons >= 0", name="ck_monthly_billings_actual_positive"),
        Index("ix_monthly_billings_status_billed_at", "status", "billed_at"),
    )

    def __repr__(self) -> str:
        return f"<MonthlyBilling {self.subscription_id} {self.month} {self.status} {self.total_amount}>"
