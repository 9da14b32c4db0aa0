"""Repository for background job run history."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import ulid

from ..core.exceptions import RepositoryException
from ..models.job_log import BackgroundJobLog

logger = logging.getLogger(__name__)


class JobLogRepository:
    """Data access helpers for the background_job_logs table."""

    def __init__(self, db: Session):
        self.db = db
        self.logger = logger

    def record(
        self,
        *,
        job_name: str,
        executed_at: datetime,
        success: bool,
        units_processed: int,
        records_created: int,
        errors: List[str],
        parameters: Optional[dict[str, Any]] = None,
    ) -> BackgroundJobLog:
        """Persist one run summary (flushed, committed by the caller)."""

        try:
            entry = BackgroundJobLog(
                id=str(ulid.ULID()),
                job_name=job_name,
                executed_at=executed_at,
                success=success,
                units_processed=units_processed,
                records_created=records_created,
                errors=list(errors),
                parameters=parameters,
            )
            self.db.add(entry)
            self.db.flush()
            return entry
        except SQLAlchemyError as exc:
            self.logger.error("Failed to record job run %s: %s", job_name, str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to record background job run") from exc

    def list_recent(self, *, job_name: Optional[str] = None, limit: int = 50) -> List[BackgroundJobLog]:
        try:
            query = self.db.query(BackgroundJobLog)
            if job_name:
                query = query.filter(BackgroundJobLog.job_name == job_name)
            rows = query.order_by(BackgroundJobLog.executed_at.desc()).limit(limit).all()
            return cast(List[BackgroundJobLog], rows)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list job history: %s", str(exc))
            raise RepositoryException("Failed to list background job history") from exc

    def delete_older_than(self, cutoff: datetime) -> int:
        try:
            deleted = (
                self.db.query(BackgroundJobLog)
                .filter(BackgroundJobLog.executed_at < cutoff)
                .delete(synchronize_session=False)
            )
            return int(deleted or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to purge job history: %s", str(exc))
            self.db.rollback()
            raise RepositoryException("Failed to purge background job history") from exc
