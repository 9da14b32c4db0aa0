# backend/lessonloop/tasks/celery_app.py
"""
Celery application configuration for LessonLoop.

This module sets up the Celery app with Redis as the broker and backend,
configures task serialization and timezone, and wires the beat schedule
that drives lesson generation and billing.
"""

import logging
import os
from typing import Any

from celery import Celery
from celery.signals import setup_logging

from lessonloop.core.config import settings

logger = logging.getLogger(__name__)


def _broker_url() -> str:
    """CELERY_BROKER_URL -> REDIS_URL -> settings.redis_url -> local default."""
    broker_url = (
        os.getenv("CELERY_BROKER_URL")
        or os.getenv("REDIS_URL")
        or settings.redis_url
        or "redis://localhost:6379"
    )
    # Ensure Redis URL includes database number
    if not any(broker_url.endswith(f"/{i}") for i in range(16)):
        broker_url = f"{broker_url}/0"
    return broker_url


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    broker_url = _broker_url()
    result_backend = os.getenv("CELERY_RESULT_BACKEND") or broker_url

    celery_app = Celery("lessonloop", broker=broker_url, backend=result_backend)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            # Beat fires in the configured business timezone
            "timezone": settings.default_timezone,
            "enable_utc": True,
            "worker_prefetch_multiplier": 1,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 600,
            "task_time_limit": 900,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "worker_hijack_root_logger": False,
            "beat_schedule_filename": "celerybeat-schedule",
        }
    )

    celery_app.conf.imports = ("lessonloop.tasks.scheduling_tasks",)
    celery_app.conf.task_routes = {
        "lessonloop.tasks.scheduling_tasks.*": {"queue": "scheduling"},
    }

    from lessonloop.tasks.beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule(settings.environment)
    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Create the Celery app instance
celery_app = create_celery_app()
