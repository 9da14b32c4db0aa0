# backend/lessonloop/routes/v1/lessons.py
"""
Lesson routes - API v1

Endpoints:
    POST /                        → Book a single (non-recurring) lesson
    GET /{lesson_id}              → Lesson with its current version
    PATCH /{lesson_id}            → Version-guarded edit (409 on stale version)
    POST /{lesson_id}/complete    → Mark completed, counts toward billing
    POST /{lesson_id}/cancel      → Cancel one lesson
"""

import logging

from fastapi import APIRouter, Body, Depends, status
from fastapi.params import Path

from ...api.dependencies import get_lesson_service
from ...schemas.lessons import (
    LessonCancelRequest,
    LessonResponse,
    LessonUpdateRequest,
    LessonVersionRequest,
    SingleLessonBookingRequest,
)
from ...services.lesson_service import LessonService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["lessons-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
def book_single_lesson(
    data: SingleLessonBookingRequest = Body(...),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    lesson = service.book_single_lesson(
        data.teacher_id, data.student_id, data.start, data.duration_minutes
    )
    return LessonResponse.model_validate(lesson)


@router.get("/{lesson_id}", response_model=LessonResponse)
def get_lesson(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    return LessonResponse.model_validate(service.get_lesson(lesson_id))


@router.patch("/{lesson_id}", response_model=LessonResponse)
def update_lesson(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: LessonUpdateRequest = Body(...),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    """Apply the patch only if the lesson is still at ``expected_version``."""
    lesson = service.update_with_version(
        lesson_id, data.expected_version, data.patch.model_dump(exclude_unset=True)
    )
    return LessonResponse.model_validate(lesson)


@router.post("/{lesson_id}/complete", response_model=LessonResponse)
def complete_lesson(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: LessonVersionRequest = Body(...),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    return LessonResponse.model_validate(service.complete_lesson(lesson_id, data.expected_version))


@router.post("/{lesson_id}/cancel", response_model=LessonResponse)
def cancel_lesson(
    lesson_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    data: LessonCancelRequest = Body(...),
    service: LessonService = Depends(get_lesson_service),
) -> LessonResponse:
    lesson = service.cancel_lesson(lesson_id, data.expected_version, data.reason)
    return LessonResponse.model_validate(lesson)
