"""
Database models for LessonLoop.

The models are organized by functionality:
- Teacher and student profiles, lesson settings
- Weekly availability and blocked time
- Recurring slots and their billing subscriptions
- Lessons (recurring occurrences and single bookings)
- Monthly billing records
- Background job history
"""

from .availability import BlockedTime, TeacherAvailability
from .billing import MonthlyBilling
from .job_log import BackgroundJobLog
from .lesson import Lesson
from .recurring_slot import RecurringSlot, SlotSubscription
from .student import StudentProfile
from .teacher import TeacherLessonSettings, TeacherProfile

__all__ = [
    "BackgroundJobLog",
    "BlockedTime",
    "Lesson",
    "MonthlyBilling",
    "RecurringSlot",
    "SlotSubscription",
    "StudentProfile",
    "TeacherAvailability",
    "TeacherLessonSettings",
    "TeacherProfile",
]
