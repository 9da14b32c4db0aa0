# backend/lessonloop/models/job_log.py
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Index, Integer, String
import ulid

from ..database import Base


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BackgroundJobLog(Base):
    """History of lesson-generation and billing batch runs."""

    __tablename__ = "background_job_logs"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    job_name = Column(String(100), nullable=False)
    executed_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    success = Column(Boolean, nullable=False)
    units_processed = Column(Integer, nullable=False, default=0)
    records_created = Column(Integer, nullable=False, default=0)
    errors = Column(JSON, nullable=False, default=list)
    # Free-form run parameters (range, month)
    parameters = Column(JSON, nullable=True)

    __table_args__ = (Index("ix_background_job_logs_name_executed", "job_name", "executed_at"),)
