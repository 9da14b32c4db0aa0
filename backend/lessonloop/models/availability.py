# backend/lessonloop/models/availability.py
"""
Teacher availability models.

TeacherAvailability holds declarative weekly windows in the teacher's wall
clock. BlockedTime holds absolute UTC exclusions (vacations, appointments)
that override the weekly windows.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
import ulid

from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TeacherAvailability(Base):
    __tablename__ = "teacher_availability"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM", "24:00" allowed
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (
        Index("ix_teacher_availability_teacher_day", "teacher_id", "day_of_week"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_teacher_availability_dow"),
    )

    def __repr__(self) -> str:
        return f"<TeacherAvailability {self.teacher_id} dow={self.day_of_week} {self.start_time}-{self.end_time}>"


class BlockedTime(Base):
    __tablename__ = "teacher_blocked_times"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (
        Index("ix_teacher_blocked_times_range", "teacher_id", "start_time", "end_time"),
        CheckConstraint("start_time < end_time", name="ck_teacher_blocked_times_range"),
    )
