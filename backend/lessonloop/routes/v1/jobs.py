# backend/lessonloop/routes/v1/jobs.py
"""
Batch job triggers - API v1

The same idempotent services Celery beat calls, exposed for operators.
Partial failures are reported in ``errors`` with a 200 status.

Endpoints:
    POST /generate-lessons    → Extend every teacher's lesson horizon
    POST /generate-billing    → Create PENDING billing for a month
    POST /mark-overdue        → BILLED past due → OVERDUE
    GET /history              → Recent job runs
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ...api.dependencies import get_billing_service, get_db, get_lesson_generator
from ...repositories import RepositoryFactory
from ...schemas.jobs import (
    BillingJobResponse,
    GenerateBillingRequest,
    GenerateLessonsRequest,
    GenerationJobResponse,
    JobLogResponse,
    OverdueJobResponse,
)
from ...services.billing_service import BillingService
from ...services.lesson_generator import LessonGenerator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jobs-v1"])


@router.post("/generate-lessons", response_model=GenerationJobResponse)
def generate_lessons(
    data: Optional[GenerateLessonsRequest] = Body(None),
    generator: LessonGenerator = Depends(get_lesson_generator),
) -> GenerationJobResponse:
    data = data or GenerateLessonsRequest()
    result = generator.generate_future_lessons(data.range_start, data.range_end)
    return GenerationJobResponse.model_validate(result)


@router.post("/generate-billing", response_model=BillingJobResponse)
def generate_billing(
    data: Optional[GenerateBillingRequest] = Body(None),
    service: BillingService = Depends(get_billing_service),
) -> BillingJobResponse:
    """Defaults to the current month."""
    month = data.month if data and data.month else service.current_month()
    result = service.generate_billing_for_month(month)
    return BillingJobResponse.model_validate(result)


@router.post("/mark-overdue", response_model=OverdueJobResponse)
def mark_overdue(service: BillingService = Depends(get_billing_service)) -> OverdueJobResponse:
    return OverdueJobResponse.model_validate(service.mark_overdue_billings())


@router.get("/history", response_model=List[JobLogResponse])
def job_history(
    job_name: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[JobLogResponse]:
    repository = RepositoryFactory.create_job_log_repository(db)
    return [
        JobLogResponse.model_validate(entry)
        for entry in repository.list_recent(job_name=job_name, limit=limit)
    ]
