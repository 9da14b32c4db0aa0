# backend/lessonloop/routes/v1/teachers.py
"""
Teacher routes - API v1

Endpoints:
    GET /{teacher_id}/available-slots   → Bookable weekly candidates
    GET /{teacher_id}/lessons           → Lessons in a date range (generates missing recurring ones)
"""

from datetime import date
import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.params import Path

from ...api.dependencies import get_conflict_checker, get_lesson_generator
from ...core.exceptions import ValidationException
from ...schemas.lessons import LessonResponse
from ...schemas.slots import AvailableSlotResponse
from ...services.conflict_checker import ConflictChecker
from ...services.lesson_generator import LessonGenerator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["teachers-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"


@router.get("/{teacher_id}/available-slots", response_model=List[AvailableSlotResponse])
def list_available_slots(
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    checker: ConflictChecker = Depends(get_conflict_checker),
) -> List[AvailableSlotResponse]:
    return [
        AvailableSlotResponse.model_validate(candidate)
        for candidate in checker.list_available_slots(teacher_id)
    ]


@router.get("/{teacher_id}/lessons", response_model=List[LessonResponse])
def list_lessons(
    teacher_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    start_date: date = Query(...),
    end_date: date = Query(...),
    generator: LessonGenerator = Depends(get_lesson_generator),
) -> List[LessonResponse]:
    if end_date < start_date:
        raise ValidationException("end_date must not be before start_date", code="INVALID_RANGE")
    lessons = generator.get_lessons_with_recurring(teacher_id, start_date, end_date)
    return [LessonResponse.model_validate(lesson) for lesson in lessons]
