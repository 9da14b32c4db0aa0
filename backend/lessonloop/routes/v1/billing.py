# backend/lessonloop/routes/v1/billing.py
"""
Billing routes - API v1

Endpoints:
    GET /                       → Records for a month (filters: teacher, student, status)
    GET /summary                → Monthly totals by status
    POST /{billing_id}/bill     → PENDING → BILLED (sends invoice)
    POST /{billing_id}/pay      → BILLED/OVERDUE → PAID
    POST /{billing_id}/cancel   → Any non-PAID → CANCELLED
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.params import Path

from ...api.dependencies import get_billing_service
from ...core.enums import BillingStatus
from ...schemas.billing import BillingResponse, MarkPaidRequest, MonthlySummaryResponse
from ...services.billing_service import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


@router.get("", response_model=List[BillingResponse])
def list_billing(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    teacher_id: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None),
    billing_status: Optional[BillingStatus] = Query(None, alias="status"),
    service: BillingService = Depends(get_billing_service),
) -> List[BillingResponse]:
    """Defaults to the current month."""
    records = service.list_billing(
        month or service.current_month(), teacher_id, student_id, billing_status
    )
    return [BillingResponse.model_validate(record) for record in records]


@router.get("/summary", response_model=MonthlySummaryResponse)
def get_monthly_summary(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    teacher_id: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None),
    service: BillingService = Depends(get_billing_service),
) -> MonthlySummaryResponse:
    summary = service.get_monthly_summary(month or service.current_month(), teacher_id, student_id)
    return MonthlySummaryResponse.model_validate(summary)


@router.post("/{billing_id}/bill", response_model=BillingResponse)
def mark_billed(
    billing_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    service: BillingService = Depends(get_billing_service),
) -> BillingResponse:
    return BillingResponse.model_validate(service.mark_billed(billing_id))


@router.post("/{billing_id}/pay", response_model=BillingResponse)
def mark_paid(
    billing_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: Optional[MarkPaidRequest] = Body(None),
    service: BillingService = Depends(get_billing_service),
) -> BillingResponse:
    payment_method = data.payment_method if data else None
    return BillingResponse.model_validate(service.mark_paid(billing_id, payment_method))


@router.post("/{billing_id}/cancel", response_model=BillingResponse)
def cancel_billing(
    billing_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    service: BillingService = Depends(get_billing_service),
) -> BillingResponse:
    return BillingResponse.model_validate(service.cancel_billing(billing_id))
