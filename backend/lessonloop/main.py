# backend/lessonloop/main.py
"""
LessonLoop API application.

Run with ``uvicorn lessonloop.main:app`` from the ``backend`` directory.
Periodic work (lesson generation, billing, overdue marking) runs in the
Celery worker; see ``lessonloop.tasks``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .routes.v1 import (
    billing as billing_v1,
    jobs as jobs_v1,
    lessons as lessons_v1,
    metrics as metrics_v1,
    slots as slots_v1,
    teachers as teachers_v1,
)

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

API_TITLE = "LessonLoop API"
API_VERSION = "1.0.0"
API_DESCRIPTION = "Recurring weekly lesson slots, lesson generation and monthly billing"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("%s starting up...", API_TITLE)
    logger.info(
        "Environment: %s (email provider: %s, default timezone: %s)",
        settings.environment,
        settings.email_provider,
        settings.default_timezone,
    )
    yield
    logger.info("%s shutting down...", API_TITLE)


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
# Register unified error envelope handlers
from .errors import register_error_handlers  # noqa: E402

register_error_handlers(app)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(slots_v1.router, prefix="/slots")
api_v1.include_router(lessons_v1.router, prefix="/lessons")
api_v1.include_router(billing_v1.router, prefix="/billing")
api_v1.include_router(jobs_v1.router, prefix="/jobs")
api_v1.include_router(teachers_v1.router, prefix="/teachers")
api_v1.include_router(metrics_v1.router)

app.include_router(api_v1)
