# backend/lessonloop/domain/billing_math.py
"""
Monthly billing arithmetic.

All amounts are integer cents. Two pricing models are supported and selected
by which rate is populated on the subscription:

* flat monthly: ``total_amount = monthly_rate`` whatever the occurrence count
* per lesson: ``total_amount = per_lesson_rate * expected_lessons``

The total never changes after the record is created; attendance only moves
``actual_lessons``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from ..core.enums import BillingModel
from .months import month_bounds
from .occurrences import occurrence_count_in_month, occurrence_dates

WEEKS_PER_YEAR = 52
MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class BillingQuote:
    expected_lessons: int
    rate_per_lesson: int
    total_amount: int
    billing_model: BillingModel


@dataclass(frozen=True)
class RefundQuote:
    total_lessons: int
    remaining_lessons: int
    refund_amount: int


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded half away from zero for non-negative operands."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (2 * numerator + denominator) // (2 * denominator)


def resolve_rate(
    monthly_rate: Optional[int], per_lesson_rate: Optional[int]
) -> Tuple[BillingModel, int]:
    """
    Pick the pricing model and its rate from the populated rate.

    A populated ``monthly_rate`` wins when both are present.

    Raises:
        ValueError: If neither rate is set or a rate is negative
    """
    if monthly_rate is not None:
        if monthly_rate < 0:
            raise ValueError("monthly_rate must not be negative")
        return BillingModel.MONTHLY, monthly_rate
    if per_lesson_rate is not None:
        if per_lesson_rate < 0:
            raise ValueError("per_lesson_rate must not be negative")
        return BillingModel.PER_LESSON, per_lesson_rate
    raise ValueError("Either monthly_rate or per_lesson_rate is required")


def resolve_billing_model(monthly_rate: Optional[int], per_lesson_rate: Optional[int]) -> BillingModel:
    return resolve_rate(monthly_rate, per_lesson_rate)[0]


def calculate_monthly_billing(
    day_of_week: int,
    month: str,
    monthly_rate: Optional[int] = None,
    per_lesson_rate: Optional[int] = None,
) -> BillingQuote:
    """
    Quote one month of a weekly slot.

    Example:
        Wednesdays in 2024-02 (4 occurrences) at a flat 12000 -> total 12000,
        3000 per lesson. Wednesdays in 2024-05 (5 occurrences) at 3000 per
        lesson -> total 15000.
    """
    model, rate = resolve_rate(monthly_rate, per_lesson_rate)
    expected = occurrence_count_in_month(day_of_week, month)

    if model is BillingModel.MONTHLY:
        return BillingQuote(
            expected_lessons=expected,
            rate_per_lesson=round_half_up(rate, expected),
            total_amount=rate,
            billing_model=model,
        )

    return BillingQuote(
        expected_lessons=expected,
        rate_per_lesson=rate,
        total_amount=rate * expected,
        billing_model=model,
    )


def calculate_refund_amount(
    day_of_week: int,
    month: str,
    cancel_date: date,
    monthly_rate: Optional[int] = None,
    per_lesson_rate: Optional[int] = None,
) -> RefundQuote:
    """
    Pro-rata value of the occurrences on or after ``cancel_date`` within ``month``.

    Informational only: reported with a cancellation, never charged or credited.
    """
    model, rate = resolve_rate(monthly_rate, per_lesson_rate)
    first, last = month_bounds(month)
    all_dates = occurrence_dates(day_of_week, first, last)
    remaining = sum(1 for d in all_dates if d >= cancel_date)
    total = len(all_dates)

    if model is BillingModel.MONTHLY:
        amount = round_half_up(rate * remaining, total)
    else:
        amount = rate * remaining

    return RefundQuote(total_lessons=total, remaining_lessons=remaining, refund_amount=amount)


def derive_slot_rates(price_per_lesson: int, billing_model: BillingModel) -> Tuple[Optional[int], Optional[int]]:
    """
    Turn a teacher's per-lesson price into ``(monthly_rate, per_lesson_rate)``.

    The monthly model spreads 52 weekly lessons over 12 months.
    """
    if price_per_lesson < 0:
        raise ValueError("price_per_lesson must not be negative")
    if billing_model is BillingModel.MONTHLY:
        return round_half_up(price_per_lesson * WEEKS_PER_YEAR, MONTHS_PER_YEAR), None
    return None, price_per_lesson
