# backend/lessonloop/schemas/jobs.py
"""Batch job triggers and their results."""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import model_validator

from ._strict_base import ORMResponseModel, StrictRequestModel
from .common import MonthStr, UTCDateTime


class GenerateLessonsRequest(StrictRequestModel):
    range_start: Optional[date] = None
    range_end: Optional[date] = None

    @model_validator(mode="after")
    def _ordered(self) -> "GenerateLessonsRequest":
        if self.range_start and self.range_end and self.range_end < self.range_start:
            raise ValueError("range_end must not be before range_start")
        return self


class GenerateBillingRequest(StrictRequestModel):
    month: Optional[MonthStr] = None


class GenerationJobResponse(ORMResponseModel):
    success: bool
    lessons_generated: int
    teachers_processed: int
    range_start: date
    range_end: date
    errors: List[str]


class BillingJobResponse(ORMResponseModel):
    success: bool
    month: str
    billing_records_created: int
    subscriptions_processed: int
    skipped: int
    errors: List[str]


class OverdueJobResponse(ORMResponseModel):
    success: bool
    marked_overdue: int
    errors: List[str]


class JobLogResponse(ORMResponseModel):
    id: str
    job_name: str
    executed_at: UTCDateTime
    success: bool
    units_processed: int
    records_created: int
    errors: List[str]
    parameters: Optional[Dict[str, Any]] = None
