# backend/lessonloop/schemas/billing.py
from typing import Dict, Optional

from pydantic import Field

from ._strict_base import ORMResponseModel, StrictRequestModel
from .common import UTCDateTime


class MarkPaidRequest(StrictRequestModel):
    payment_method: Optional[str] = Field(default=None, max_length=50)


class BillingResponse(ORMResponseModel):
    id: str
    subscription_id: str
    student_id: str
    teacher_id: str
    month: str
    expected_lessons: int
    actual_lessons: int
    rate_per_lesson: int
    total_amount: int
    status: str
    billed_at: Optional[UTCDateTime] = None
    paid_at: Optional[UTCDateTime] = None
    cancelled_at: Optional[UTCDateTime] = None
    payment_method: Optional[str] = None


class MonthlySummaryResponse(ORMResponseModel):
    month: str
    record_count: int
    total_amount: int
    expected_lessons: int
    actual_lessons: int
    amount_by_status: Dict[str, int]
    count_by_status: Dict[str, int]
