# backend/lessonloop/models/recurring_slot.py
"""
Recurring weekly slot and its billing subscriptions.

A RecurringSlot is the weekly commitment (every Wednesday 16:00 for 30
minutes). A SlotSubscription is the billing period attached to it; a rate
change closes one subscription and opens the next, so a slot may own several
sequential subscriptions but at most one ACTIVE one.
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
    text,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import SlotStatus, SubscriptionStatus
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


ACTIVE_SLOT_INDEX_NAME = "uq_recurring_slots_active_tuple"


class RecurringSlot(Base):
    __tablename__ = "recurring_slots"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=False, index=True)

    # Weekly pattern, wall clock in `timezone`
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    duration_minutes = Column(Integer, nullable=False)
    timezone = Column(String(64), nullable=False)

    # Integer cents; exactly one is populated
    monthly_rate = Column(Integer, nullable=True)
    per_lesson_rate = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default=SlotStatus.ACTIVE.value, index=True)
    booked_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now_utc)

    subscriptions = relationship(
        "SlotSubscription",
        back_populates="slot",
        cascade="all, delete-orphan",
        order_by="SlotSubscription.start_month",
    )
    teacher = relationship("TeacherProfile")
    student = relationship("StudentProfile")

    __table_args__ = (
        # Final backstop against two concurrent bookings of the same time
        Index(
            ACTIVE_SLOT_INDEX_NAME,
            "teacher_id",
            "day_of_week",
            "start_time",
            "duration_minutes",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_recurring_slots_dow"),
        CheckConstraint("duration_minutes IN (30, 60)", name="ck_recurring_slots_duration"),
    )

    @property
    def active_subscription(self) -> "SlotSubscription | None":
        for subscription in self.subscriptions:
            if subscription.status == SubscriptionStatus.ACTIVE.value:
                return subscription
        return None

    def __repr__(self) -> str:
        return (
            f"<RecurringSlot {self.id} dow={self.day_of_week} {self.start_time} "
            f"{self.duration_minutes}m {self.status}>"
        )


ACTIVE_SLOT_INDEX = next(
    index for index in RecurringSlot.__table__.indexes if index.name == ACTIVE_SLOT_INDEX_NAME
)


class SlotSubscription(Base):
    __tablename__ = "slot_subscriptions"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    slot_id = Column(String(26), ForeignKey("recurring_slots.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=False, index=True)

    start_month = Column(String(7), nullable=False)  # "YYYY-MM"
    end_month = Column(String(7), nullable=True)

    monthly_rate = Column(Integer, nullable=True)
    per_lesson_rate = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    last_billed_month = Column(String(7), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_now_utc)

    slot = relationship("RecurringSlot", back_populates="subscriptions")
    billings = relationship("MonthlyBilling", back_populates="subscription")

    __table_args__ = (
        Index(
            "uq_slot_subscriptions_active_slot",
            "slot_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        CheckConstraint(
            "end_month IS NULL OR start_month <= end_month",
            name="ck_slot_subscriptions_month_order",
        ),
    )

    def covers_month(self, month: str) -> bool:
        if month < self.start_month:
            return False
        return self.end_month is None or month <= self.end_month
