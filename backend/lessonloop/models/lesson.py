# backend/lessonloop/models/lesson.py
"""
Lesson model.

One row per concrete lesson. Recurring lessons are materialized from a
RecurringSlot by the generator and carry ``slot_id``; the ``(slot_id, date)``
unique constraint keeps repeated generation runs from duplicating rows.
Single bookings have no slot.

``version`` is the optimistic lock: every successful mutation increments it
and writes supplying a stale version are rejected.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import LessonStatus
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    student_id = Column(String(26), ForeignKey("student_profiles.id"), nullable=False)

    # UTC start instant
    date = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    timezone = Column(String(64), nullable=False)

    status = Column(String(20), nullable=False, default=LessonStatus.SCHEDULED.value, index=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    slot_id = Column(String(26), ForeignKey("recurring_slots.id"), nullable=True, index=True)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(String(100), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    slot = relationship("RecurringSlot", backref="lessons")

    __table_args__ = (
        UniqueConstraint("slot_id", "date", name="uq_lessons_slot_date"),
        Index("ix_lessons_teacher_date", "teacher_id", "date"),
        Index("ix_lessons_student_date", "student_id", "date"),
        CheckConstraint("duration_minutes > 0", name="ck_lessons_duration"),
        CheckConstraint("version >= 1", name="ck_lessons_version"),
    )

    def __repr__(self) -> str:
        return f"<Lesson {self.id} {self.date} {self.status} v{self.version}>"
