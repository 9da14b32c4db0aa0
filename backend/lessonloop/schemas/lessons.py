# backend/lessonloop/schemas/lessons.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from ._strict_base import ORMResponseModel, StrictRequestModel
from .common import UTCDateTime


class LessonPatch(StrictRequestModel):
    """Editable lesson fields; omitted fields are left untouched."""

    notes: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[Literal["SCHEDULED", "COMPLETED", "CANCELLED"]] = None
    duration_minutes: Optional[Literal[30, 60]] = None
    cancellation_reason: Optional[str] = Field(default=None, max_length=100)


class LessonUpdateRequest(StrictRequestModel):
    expected_version: int = Field(ge=1)
    patch: LessonPatch


class LessonVersionRequest(StrictRequestModel):
    expected_version: int = Field(ge=1)


class LessonCancelRequest(LessonVersionRequest):
    reason: Optional[str] = Field(default=None, max_length=100)


class SingleLessonBookingRequest(StrictRequestModel):
    teacher_id: str
    student_id: str
    start: datetime = Field(description="Lesson start; naive values are treated as UTC")
    duration_minutes: Literal[30, 60]


class LessonResponse(ORMResponseModel):
    id: str
    teacher_id: str
    student_id: str
    slot_id: Optional[str] = None
    date: UTCDateTime
    duration_minutes: int
    timezone: str
    status: str
    is_recurring: bool
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    version: int
    completed_at: Optional[UTCDateTime] = None
    cancelled_at: Optional[UTCDateTime] = None
