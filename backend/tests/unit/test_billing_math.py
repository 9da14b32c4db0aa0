# backend/tests/unit/test_billing_math.py
"""
Tests for monthly billing arithmetic.

All amounts are integer cents.
"""

from datetime import date

import pytest

from lessonloop.core.enums import BillingModel
from lessonloop.domain.billing_math import (
    calculate_monthly_billing,
    calculate_refund_amount,
    derive_slot_rates,
    resolve_billing_model,
    resolve_rate,
    round_half_up,
)

WEDNESDAY = 3


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "numerator, denominator, expected",
        [(10, 4, 3), (9, 4, 2), (12000, 4, 3000), (13000, 3, 4333), (5, 2, 3), (0, 5, 0)],
    )
    def test_rounding(self, numerator, denominator, expected):
        assert round_half_up(numerator, denominator) == expected

    def test_zero_denominator_rejected(self):
        with pytest.raises(ValueError):
            round_half_up(1, 0)


class TestBillingModel:
    def test_monthly_rate_wins(self):
        assert resolve_billing_model(12000, 3000) is BillingModel.MONTHLY

    def test_per_lesson(self):
        assert resolve_billing_model(None, 3000) is BillingModel.PER_LESSON

    def test_rate_comes_with_model(self):
        assert resolve_rate(12000, 3000) == (BillingModel.MONTHLY, 12000)
        assert resolve_rate(None, 3000) == (BillingModel.PER_LESSON, 3000)

    def test_requires_a_rate(self):
        with pytest.raises(ValueError):
            resolve_billing_model(None, None)

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            resolve_billing_model(-1, None)


class TestCalculateMonthlyBilling:
    def test_flat_rate_four_week_month(self):
        quote = calculate_monthly_billing(WEDNESDAY, "2024-02", monthly_rate=12000)

        assert quote.expected_lessons == 4
        assert quote.total_amount == 12000
        assert quote.rate_per_lesson == 3000
        assert quote.billing_model is BillingModel.MONTHLY

    def test_flat_rate_five_week_month_keeps_total(self):
        quote = calculate_monthly_billing(WEDNESDAY, "2024-05", monthly_rate=12000)

        assert quote.expected_lessons == 5
        assert quote.total_amount == 12000
        assert quote.rate_per_lesson == 2400

    def test_per_lesson_five_week_month(self):
        quote = calculate_monthly_billing(WEDNESDAY, "2024-05", per_lesson_rate=3000)

        assert quote.expected_lessons == 5
        assert quote.total_amount == 15000
        assert quote.rate_per_lesson == 3000
        assert quote.billing_model is BillingModel.PER_LESSON

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            calculate_monthly_billing(WEDNESDAY, "2024-13", monthly_rate=12000)


class TestRefundAmount:
    def test_flat_rate_pro_rata(self):
        # Wednesdays in Feb 2024: 7, 14, 21, 28. Two remain from the 20th.
        quote = calculate_refund_amount(WEDNESDAY, "2024-02", date(2024, 2, 20), monthly_rate=12000)

        assert quote.total_lessons == 4
        assert quote.remaining_lessons == 2
        assert quote.refund_amount == 6000

    def test_per_lesson(self):
        quote = calculate_refund_amount(WEDNESDAY, "2024-05", date(2024, 5, 1), per_lesson_rate=3000)
        assert quote.remaining_lessons == 5
        assert quote.refund_amount == 15000

    def test_nothing_left_after_last_occurrence(self):
        quote = calculate_refund_amount(WEDNESDAY, "2024-02", date(2024, 2, 29), monthly_rate=12000)
        assert quote.remaining_lessons == 0
        assert quote.refund_amount == 0


class TestDeriveSlotRates:
    def test_monthly_spreads_52_weeks(self):
        assert derive_slot_rates(3000, BillingModel.MONTHLY) == (13000, None)

    def test_monthly_rounds_half_up(self):
        # 5500 * 52 / 12 = 23833.33
        assert derive_slot_rates(5500, BillingModel.MONTHLY) == (23833, None)

    def test_per_lesson_passthrough(self):
        assert derive_slot_rates(3000, BillingModel.PER_LESSON) == (None, 3000)
