# backend/tests/conftest.py
"""
Shared pytest fixtures for the LessonLoop test suite.

Tests run against an in-memory SQLite database. Tables are created for each
test and dropped afterwards, so fixtures commit freely.

Time is frozen: ``clock`` starts at Monday 2024-01-08 12:00 UTC (06:00 in
America/Chicago) and can be advanced by tests.
"""

import os

# Must be set before lessonloop.core.config is imported
os.environ["IS_TESTING"] = "true"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ.setdefault("CI", "true")

from datetime import datetime, timedelta, timezone
from typing import Iterator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from lessonloop.api.dependencies import get_clock, get_db, get_email_service
from lessonloop.core.config import settings
from lessonloop.database import Base, SessionLocal, engine
from lessonloop.main import app
from lessonloop.models import (
    BlockedTime,
    StudentProfile,
    TeacherAvailability,
    TeacherLessonSettings,
    TeacherProfile,
)
from lessonloop.services.email_console import ConsoleEmailService
from lessonloop.services.notification_service import NotificationService

# Ensure we're using the test database
assert settings.is_testing, "IS_TESTING must be set for the test suite"

FIXED_NOW = datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc)
TEACHER_TZ = "America/Chicago"

# 0 = Sunday
MONDAY = 1
WEDNESDAY = 3


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def db() -> Iterator[Session]:
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def teacher(db: Session) -> TeacherProfile:
    """Chicago teacher offering 30 and 60 minute lessons on monthly billing."""
    teacher = TeacherProfile(
        name="Sarah Chen",
        email="sarah.chen@example.com",
        timezone=TEACHER_TZ,
    )
    db.add(teacher)
    db.flush()
    db.add(
        TeacherLessonSettings(
            teacher_id=teacher.id,
            allows_30_min=True,
            allows_60_min=True,
            price_30_min=3000,
            price_60_min=5500,
            advance_booking_days=21,
            min_notice_hours=0,
            billing_model="monthly",
        )
    )
    db.add_all(
        [
            TeacherAvailability(
                teacher_id=teacher.id, day_of_week=WEDNESDAY, start_time="09:00", end_time="17:00"
            ),
            TeacherAvailability(
                teacher_id=teacher.id, day_of_week=MONDAY, start_time="15:00", end_time="18:00"
            ),
        ]
    )
    db.commit()
    return teacher


@pytest.fixture
def student(db: Session, teacher: TeacherProfile) -> StudentProfile:
    student = StudentProfile(teacher_id=teacher.id, name="Emma Johnson", email="emma@example.com")
    db.add(student)
    db.commit()
    return student


@pytest.fixture
def second_student(db: Session, teacher: TeacherProfile) -> StudentProfile:
    student = StudentProfile(teacher_id=teacher.id, name="Liam Park", email="liam@example.com")
    db.add(student)
    db.commit()
    return student


@pytest.fixture
def lesson_settings(db: Session, teacher: TeacherProfile) -> TeacherLessonSettings:
    return db.query(TeacherLessonSettings).filter_by(teacher_id=teacher.id).one()


@pytest.fixture
def block_time(db: Session, teacher: TeacherProfile):
    """Factory for blocked time on the teacher's calendar."""

    def _block(start: datetime, end: datetime, reason: str = "Recital") -> BlockedTime:
        blocked = BlockedTime(teacher_id=teacher.id, start_time=start, end_time=end, reason=reason)
        db.add(blocked)
        db.commit()
        return blocked

    return _block


@pytest.fixture
def email_service() -> ConsoleEmailService:
    return ConsoleEmailService()


@pytest.fixture
def notification_service(email_service: ConsoleEmailService) -> NotificationService:
    return NotificationService(email_service)


@pytest.fixture
def client(db: Session, clock: FrozenClock, email_service: ConsoleEmailService) -> Iterator[TestClient]:
    """Test client sharing the test session, clock and console mailer."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_service] = lambda: email_service
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
