# backend/lessonloop/models/teacher.py
"""
Teacher profile and per-teacher lesson settings.

Lesson settings drive which durations a teacher offers, the booking window
policy and how recurring slot rates are derived.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import BillingModel
from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TeacherProfile(Base):
    __tablename__ = "teacher_profiles"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=False)
    email = Column(String(320), nullable=False, unique=True)
    # Wall-clock timezone for availability windows and slot start times
    timezone = Column(String(64), nullable=False, default="America/Chicago")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    lesson_settings = relationship(
        "TeacherLessonSettings",
        back_populates="teacher",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<TeacherProfile {self.id} {self.name!r}>"


class TeacherLessonSettings(Base):
    """Durations offered, prices (cents per lesson) and booking window policy."""

    __tablename__ = "teacher_lesson_settings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    teacher_id = Column(String(26), ForeignKey("teacher_profiles.id"), nullable=False, unique=True)

    allows_30_min = Column(Boolean, nullable=False, default=True)
    allows_60_min = Column(Boolean, nullable=False, default=True)
    price_30_min = Column(Integer, nullable=False, default=0)
    price_60_min = Column(Integer, nullable=False, default=0)

    advance_booking_days = Column(Integer, nullable=False, default=21)
    min_notice_hours = Column(Integer, nullable=False, default=0)
    billing_model = Column(String(20), nullable=False, default=BillingModel.MONTHLY.value)

    teacher = relationship("TeacherProfile", back_populates="lesson_settings")

    __table_args__ = (
        CheckConstraint("price_30_min >= 0 AND price_60_min >= 0", name="ck_lesson_settings_prices"),
        CheckConstraint(
            "advance_booking_days BETWEEN 1 AND 90", name="ck_lesson_settings_advance_days"
        ),
    )

    def offers_duration(self, duration_minutes: int) -> bool:
        if duration_minutes == 30:
            return bool(self.allows_30_min)
        if duration_minutes == 60:
            return bool(self.allows_60_min)
        return False

    def price_for(self, duration_minutes: int) -> int:
        return int(self.price_30_min if duration_minutes == 30 else self.price_60_min)
