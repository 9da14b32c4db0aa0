# backend/tests/tasks/test_scheduling_tasks.py
"""
Celery task bodies run synchronously against the test session.

Tasks use the real wall clock, so assertions avoid exact dates.
"""

from contextlib import contextmanager

from celery.schedules import crontab
import pytest

from lessonloop.models import BackgroundJobLog, MonthlyBilling
from lessonloop.services.billing_service import BillingService
from lessonloop.services.recurring_slot_service import RecurringSlotService
from lessonloop.tasks import scheduling_tasks
from lessonloop.tasks.beat_schedule import CELERYBEAT_SCHEDULE, get_beat_schedule
from lessonloop.tasks.celery_app import celery_app

WEDNESDAY = 3


@pytest.fixture
def task_session(db, monkeypatch):
    """Point the tasks at the test session instead of a fresh SessionLocal."""

    @contextmanager
    def _session():
        yield db
        db.commit()

    monkeypatch.setattr(scheduling_tasks, "get_db_session", _session)
    return db


@pytest.fixture
def booking(db, clock, teacher, student):
    return RecurringSlotService(db, clock=clock).book_recurring_slot(
        teacher.id, student.id, WEDNESDAY, "16:00", 30
    )


class TestSchedulingTasks:
    def test_generate_future_lessons(self, task_session, booking):
        summary = scheduling_tasks.generate_future_lessons()

        assert summary["success"] is True
        assert summary["teachers_processed"] == 1
        # Twelve weeks ahead of today
        assert summary["lessons_generated"] >= 11
        assert isinstance(summary["range_start"], str)

    def test_generate_future_lessons_explicit_range(self, task_session, booking):
        summary = scheduling_tasks.generate_future_lessons("2024-02-01", "2024-02-29")

        assert summary["range_start"] == "2024-02-01"
        assert summary["range_end"] == "2024-02-29"

    def test_generate_monthly_billing(self, task_session, booking):
        summary = scheduling_tasks.generate_monthly_billing("2024-02")

        assert summary["success"] is True
        assert summary["billing_records_created"] == 1
        assert task_session.query(MonthlyBilling).count() == 1

    def test_mark_overdue_billings(self, task_session, clock, booking):
        service = BillingService(task_session, clock=clock)
        service.generate_billing_for_month("2024-02")
        service.mark_billed(service.list_billing("2024-02")[0].id)

        summary = scheduling_tasks.mark_overdue_billings()

        assert summary["marked_overdue"] == 1

    def test_cleanup_job_logs(self, task_session, clock, booking):
        # One run logged at the frozen 2024 clock, one at the real time
        BillingService(task_session, clock=clock).generate_billing_for_month("2024-02")
        scheduling_tasks.generate_monthly_billing("2024-03")

        deleted = scheduling_tasks.cleanup_job_logs()

        assert deleted == 1
        remaining = task_session.query(BackgroundJobLog).one()
        assert remaining.parameters == {"month": "2024-03"}


class TestBeatSchedule:
    def test_every_job_is_scheduled(self):
        assert set(CELERYBEAT_SCHEDULE) == {
            "generate-future-lessons",
            "generate-monthly-billing",
            "mark-overdue-billings",
            "cleanup-job-logs",
        }
        for entry in CELERYBEAT_SCHEDULE.values():
            assert entry["task"].startswith("lessonloop.tasks.scheduling_tasks.")

    def test_billing_runs_on_the_first(self):
        schedule = CELERYBEAT_SCHEDULE["generate-monthly-billing"]["schedule"]
        assert schedule.day_of_month == {1}

    def test_development_generates_hourly(self):
        schedule = get_beat_schedule("development")
        assert schedule["generate-future-lessons"]["schedule"] == crontab(minute=0)
        # The shared definition is left untouched
        assert CELERYBEAT_SCHEDULE["generate-future-lessons"]["schedule"] == crontab(hour=2, minute=0)

    def test_tasks_registered_with_app(self):
        assert "lessonloop.tasks.scheduling_tasks.generate_monthly_billing" in celery_app.tasks
