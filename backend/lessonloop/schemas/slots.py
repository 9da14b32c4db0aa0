# backend/lessonloop/schemas/slots.py
"""
Recurring slot schemas.

Request DTOs are strict (unknown fields rejected). Response DTOs are read
from the ORM objects returned by RecurringSlotService.
"""

from datetime import date
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from ._strict_base import ORMResponseModel, StrictModel, StrictRequestModel
from .common import HHMM, Cents, MonthStr, UTCDateTime
from .lessons import LessonResponse


class SlotBookingRequest(StrictRequestModel):
    """Book a weekly slot for a student."""

    teacher_id: str
    student_id: str
    day_of_week: int = Field(ge=0, le=6, description="0 = Sunday")
    start_time: HHMM
    duration_minutes: Literal[30, 60]
    start_month: Optional[MonthStr] = None
    end_month: Optional[MonthStr] = Field(None, description="Last billed month, inclusive")
    monthly_rate: Optional[Cents] = None
    per_lesson_rate: Optional[Cents] = None

    @model_validator(mode="after")
    def _rates_and_months(self) -> "SlotBookingRequest":
        if self.monthly_rate is not None and self.per_lesson_rate is not None:
            raise ValueError("Provide monthly_rate or per_lesson_rate, not both")
        if self.start_month and self.end_month and self.end_month < self.start_month:
            raise ValueError("end_month must not be before start_month")
        return self


class SlotCancelRequest(StrictRequestModel):
    effective_date: Optional[date] = None


class SlotSuspendRequest(StrictRequestModel):
    effective_date: Optional[date] = None


class RateChangeRequest(StrictRequestModel):
    effective_month: MonthStr
    monthly_rate: Optional[Cents] = None
    per_lesson_rate: Optional[Cents] = None

    @model_validator(mode="after")
    def _exactly_one_rate(self) -> "RateChangeRequest":
        if (self.monthly_rate is None) == (self.per_lesson_rate is None):
            raise ValueError("Provide exactly one of monthly_rate or per_lesson_rate")
        return self


class SubscriptionResponse(ORMResponseModel):
    id: str
    slot_id: str
    student_id: str
    start_month: str
    end_month: Optional[str] = None
    monthly_rate: Optional[int] = None
    per_lesson_rate: Optional[int] = None
    status: str
    last_billed_month: Optional[str] = None


class SlotResponse(ORMResponseModel):
    id: str
    teacher_id: str
    student_id: str
    day_of_week: int
    start_time: str
    duration_minutes: int
    timezone: str
    monthly_rate: Optional[int] = None
    per_lesson_rate: Optional[int] = None
    status: str
    booked_at: UTCDateTime
    cancelled_at: Optional[UTCDateTime] = None
    subscriptions: List[SubscriptionResponse] = Field(default_factory=list)


class SlotBookingResponse(StrictModel):
    slot: SlotResponse
    subscription: SubscriptionResponse
    lessons: List[LessonResponse]


class RefundQuoteResponse(ORMResponseModel):
    total_lessons: int
    remaining_lessons: int
    refund_amount: int


class SlotCancellationResponse(ORMResponseModel):
    slot_id: str
    slots_deleted: int
    slots_cancelled: int
    lessons_cancelled: int
    billing_records_cancelled: int
    refund: Optional[RefundQuoteResponse] = None


class SlotStatusChangeResponse(ORMResponseModel):
    slot: SlotResponse
    lessons_affected: int
    lessons_generated: int


class AvailableSlotResponse(ORMResponseModel):
    day_of_week: int
    start_time: str
    duration_minutes: int
    monthly_rate: Optional[int] = None
    per_lesson_rate: Optional[int] = None
