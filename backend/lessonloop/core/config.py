# backend/lessonloop/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level for API and workers")
    is_testing: bool = Field(default=False, description="Set by the test harness")

    database_url: str = Field(
        default="postgresql://localhost/lessonloop",
        description="SQLAlchemy database URL",
    )
    test_database_url: str = Field(
        default="sqlite+pysqlite:///:memory:",
        description="Database used by the test suite",
    )
    redis_url: Optional[str] = Field(default=None, description="Redis URL for Celery")

    # Scheduling policy
    default_timezone: str = Field(
        default="America/Chicago", description="Timezone used when a teacher has none"
    )
    booking_lookahead_weeks: int = Field(
        default=4, ge=1, description="Weeks of lessons materialized when a slot is booked"
    )
    generation_horizon_weeks: int = Field(
        default=12, ge=1, description="Weeks of lessons kept materialized by the daily job"
    )
    default_advance_booking_days: int = Field(
        default=21, ge=1, le=90, description="Furthest first lesson a booking may start"
    )
    min_booking_notice_hours: int = Field(
        default=0, ge=0, description="Minimum notice before the first booked lesson"
    )

    # Optimistic locking
    optimistic_lock_max_attempts: int = Field(default=3, ge=1, le=10)
    optimistic_lock_backoff_ms: int = Field(default=100, ge=0)

    # Billing
    billing_due_days: int = Field(
        default=14, ge=1, description="Days after invoicing before a bill is overdue"
    )
    job_log_retention_days: int = Field(default=30, ge=1)

    # Email
    email_provider: Literal["console", "resend"] = Field(
        default="console", description="console logs emails, resend delivers them"
    )
    resend_api_key: Optional[SecretStr] = Field(default=None)
    email_from_address: str = Field(default="lessons@lessonloop.app")
    email_from_name: str = Field(default="LessonLoop")

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").upper()

    def get_database_url(self) -> str:
        """Return the database URL for the current mode."""
        if self.is_testing or is_running_tests():
            return self.test_database_url
        return self.database_url


settings = Settings()
