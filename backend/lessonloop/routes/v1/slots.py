# backend/lessonloop/routes/v1/slots.py
"""
Recurring slot routes - API v1

Versioned slot endpoints under /api/v1/slots.
All business logic delegated to RecurringSlotService.

Endpoints:
    POST /                      → Book a weekly slot
    GET /                       → List slots (teacher/student/status filters)
    GET /{slot_id}              → Slot with its subscriptions
    POST /{slot_id}/cancel      → Cancel from an effective date
    POST /{slot_id}/suspend     → Pause a slot
    POST /{slot_id}/reactivate  → Resume a suspended slot
    POST /{slot_id}/rate        → Start a new subscription at a new rate
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.params import Path

from ...api.dependencies import get_recurring_slot_service
from ...core.enums import SlotStatus
from ...schemas.lessons import LessonResponse
from ...schemas.slots import (
    RateChangeRequest,
    SlotBookingRequest,
    SlotBookingResponse,
    SlotCancellationResponse,
    SlotCancelRequest,
    SlotResponse,
    SlotStatusChangeResponse,
    SlotSuspendRequest,
    SubscriptionResponse,
)
from ...services.recurring_slot_service import RecurringSlotService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["slots-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post("", response_model=SlotBookingResponse, status_code=status.HTTP_201_CREATED)
def book_slot(
    data: SlotBookingRequest = Body(...),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> SlotBookingResponse:
    """Book a weekly slot; rejected bookings return 409 with the reason code."""
    result = service.book_recurring_slot(**data.model_dump())
    return SlotBookingResponse(
        slot=SlotResponse.model_validate(result.slot),
        subscription=SubscriptionResponse.model_validate(result.subscription),
        lessons=[LessonResponse.model_validate(lesson) for lesson in result.lessons],
    )


@router.get("", response_model=List[SlotResponse])
def list_slots(
    teacher_id: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None),
    slot_status: Optional[SlotStatus] = Query(None, alias="status"),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> List[SlotResponse]:
    slots = service.list_slots(teacher_id=teacher_id, student_id=student_id, status=slot_status)
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.get("/{slot_id}", response_model=SlotResponse)
def get_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> SlotResponse:
    return SlotResponse.model_validate(service.get_slot(slot_id))


@router.post("/{slot_id}/cancel", response_model=SlotCancellationResponse)
def cancel_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: Optional[SlotCancelRequest] = Body(None),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> SlotCancellationResponse:
    result = service.cancel_slot(slot_id, effective_date=data.effective_date if data else None)
    return SlotCancellationResponse.model_validate(result)


@router.post("/{slot_id}/suspend", response_model=SlotStatusChangeResponse)
def suspend_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: Optional[SlotSuspendRequest] = Body(None),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> SlotStatusChangeResponse:
    result = service.suspend_slot(slot_id, effective_date=data.effective_date if data else None)
    return SlotStatusChangeResponse.model_validate(result)


@router.post("/{slot_id}/reactivate", response_model=SlotStatusChangeResponse)
def reactivate_slot(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> SlotStatusChangeResponse:
    return SlotStatusChangeResponse.model_validate(service.reactivate_slot(slot_id))


@router.post("/{slot_id}/rate", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def change_rate(
    slot_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: RateChangeRequest = Body(...),
    service: RecurringSlotService = Depends(get_recurring_slot_service),
) -> SubscriptionResponse:
    """Close the current subscription and open the next one at the new rate."""
    subscription = service.change_rate(
        slot_id,
        data.effective_month,
        monthly_rate=data.monthly_rate,
        per_lesson_rate=data.per_lesson_rate,
    )
    return SubscriptionResponse.model_validate(subscription)
