"""
Template registry for strongly-typed access to Jinja templates.

Use with TemplateService to avoid stringly-typed paths.
"""

from enum import Enum
from typing import Final


class TemplateRegistry(str, Enum):
    # Recurring slots
    SLOT_BOOKED_STUDENT = "email/slots/booked_student.html"
    SLOT_BOOKED_TEACHER = "email/slots/booked_teacher.html"
    SLOT_CANCELLED = "email/slots/cancelled.html"
    SLOT_SUSPENDED = "email/slots/suspended.html"

    # Billing
    BILLING_INVOICE = "email/billing/invoice.html"
    BILLING_OVERDUE = "email/billing/overdue.html"


_TEMPLATE_SUBJECTS: Final[dict[TemplateRegistry, str]] = {
    TemplateRegistry.SLOT_BOOKED_STUDENT: "Your weekly lesson is booked",
    TemplateRegistry.SLOT_BOOKED_TEACHER: "New weekly student booking",
    TemplateRegistry.SLOT_CANCELLED: "Weekly lesson cancelled",
    TemplateRegistry.SLOT_SUSPENDED: "Weekly lesson paused",
    TemplateRegistry.BILLING_INVOICE: "Your monthly lesson invoice",
    TemplateRegistry.BILLING_OVERDUE: "Lesson invoice overdue",
}


def get_subject(template: TemplateRegistry) -> str:
    return _TEMPLATE_SUBJECTS[template]
