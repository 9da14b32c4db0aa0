# backend/lessonloop/core/enums.py
"""
Core enums for the LessonLoop service.

Every status column is a closed enumeration. Transitions are declared once,
next to the enum, and every state change in the service layer goes through
``can_transition_to`` instead of comparing strings at the call site.
"""

from enum import Enum
from typing import Dict, FrozenSet


class SlotStatus(str, Enum):
    """Lifecycle of a weekly recurring slot."""

    PROPOSED = "PROPOSED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "SlotStatus") -> bool:
        return target in _SLOT_TRANSITIONS[self]


_SLOT_TRANSITIONS: Dict[SlotStatus, FrozenSet[SlotStatus]] = {
    SlotStatus.PROPOSED: frozenset({SlotStatus.ACTIVE, SlotStatus.CANCELLED}),
    SlotStatus.ACTIVE: frozenset({SlotStatus.SUSPENDED, SlotStatus.CANCELLED}),
    SlotStatus.SUSPENDED: frozenset({SlotStatus.ACTIVE, SlotStatus.CANCELLED}),
    SlotStatus.CANCELLED: frozenset(),
}


class SubscriptionStatus(str, Enum):
    """Billing period attached to a slot."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"  # Closed by a rate change; a newer subscription follows

    def can_transition_to(self, target: "SubscriptionStatus") -> bool:
        return target in _SUBSCRIPTION_TRANSITIONS[self]


_SUBSCRIPTION_TRANSITIONS: Dict[SubscriptionStatus, FrozenSet[SubscriptionStatus]] = {
    SubscriptionStatus.ACTIVE: frozenset(
        {SubscriptionStatus.PAUSED, SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED}
    ),
    SubscriptionStatus.PAUSED: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED}),
    SubscriptionStatus.CANCELLED: frozenset(),
    SubscriptionStatus.EXPIRED: frozenset(),
}

# Months covered by these still owe lessons and billing
BILLABLE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.EXPIRED.value)


class LessonStatus(str, Enum):
    """Lifecycle of a concrete lesson occurrence."""

    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "LessonStatus") -> bool:
        return target in _LESSON_TRANSITIONS[self]


_LESSON_TRANSITIONS: Dict[LessonStatus, FrozenSet[LessonStatus]] = {
    LessonStatus.SCHEDULED: frozenset({LessonStatus.COMPLETED, LessonStatus.CANCELLED}),
    # Suspension cancels future lessons; reactivation puts them back.
    LessonStatus.CANCELLED: frozenset({LessonStatus.SCHEDULED}),
    LessonStatus.COMPLETED: frozenset(),
}


class BillingStatus(str, Enum):
    """Lifecycle of a monthly billing record."""

    PENDING = "PENDING"
    BILLED = "BILLED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "BillingStatus") -> bool:
        return target in _BILLING_TRANSITIONS[self]


_BILLING_TRANSITIONS: Dict[BillingStatus, FrozenSet[BillingStatus]] = {
    BillingStatus.PENDING: frozenset({BillingStatus.BILLED, BillingStatus.CANCELLED}),
    BillingStatus.BILLED: frozenset(
        {BillingStatus.PAID, BillingStatus.OVERDUE, BillingStatus.CANCELLED}
    ),
    BillingStatus.OVERDUE: frozenset({BillingStatus.PAID, BillingStatus.CANCELLED}),
    BillingStatus.PAID: frozenset(),
    BillingStatus.CANCELLED: frozenset(),
}


class BillingModel(str, Enum):
    """How a teacher prices recurring slots."""

    MONTHLY = "monthly"  # flat monthly rate regardless of occurrence count
    PER_LESSON = "per_lesson"  # rate per lesson times occurrences in the month


class BookingReason(str, Enum):
    """Reason codes returned when a candidate booking is rejected."""

    NOT_AVAILABLE = "NOT_AVAILABLE"
    BLOCKED = "BLOCKED"
    CONFLICT = "CONFLICT"
    OUT_OF_WINDOW = "OUT_OF_WINDOW"


class JobName(str, Enum):
    GENERATE_LESSONS = "generate-future-lessons"
    GENERATE_BILLING = "generate-monthly-billing"
    MARK_OVERDUE = "mark-overdue-billings"
