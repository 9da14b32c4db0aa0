# backend/lessonloop/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for LessonLoop.

Beat is the external cron-like invoker: every entry calls an idempotent
service, so a missed or duplicated run is harmless.
"""

import logging
from typing import Any, Dict

from celery.schedules import crontab

logger = logging.getLogger(__name__)

TASK_PREFIX = "lessonloop.tasks.scheduling_tasks"

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Keep every teacher's lesson horizon materialized
    "generate-future-lessons": {
        "task": f"{TASK_PREFIX}.generate_future_lessons",
        "schedule": crontab(hour=2, minute=0),
        "options": {"queue": "scheduling", "priority": 5},
    },
    # Monthly billing on the 1st, after lesson generation
    "generate-monthly-billing": {
        "task": f"{TASK_PREFIX}.generate_monthly_billing",
        "schedule": crontab(day_of_month=1, hour=3, minute=0),
        "options": {"queue": "scheduling", "priority": 5},
    },
    "mark-overdue-billings": {
        "task": f"{TASK_PREFIX}.mark_overdue_billings",
        "schedule": crontab(hour=4, minute=0),
        "options": {"queue": "scheduling", "priority": 3},
    },
    "cleanup-job-logs": {
        "task": f"{TASK_PREFIX}.cleanup_job_logs",
        "schedule": crontab(hour=4, minute=30),
        "options": {"queue": "scheduling", "priority": 1},
    },
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """
    Get the beat schedule for the given environment.

    Development runs generation hourly so local changes show up quickly.
    """
    schedule = {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
    if environment == "development":
        schedule["generate-future-lessons"]["schedule"] = crontab(minute=0)
    logger.debug("Beat schedule for %s: %s", environment, sorted(schedule))
    return schedule
