"""Tests for the billing period calculator (pure functions, no DB)."""

from datetime import date, timedelta

import pytest

from app.models.lease import BillingFrequency
from app.services.rentals.errors import ValidationError
from app.services.rentals.periods import (
    add_months,
    compute_billing_periods,
    due_date_for,
    period_end,
)


def _assert_contiguous(periods):
    for prev, cur in zip(periods, periods[1:]):
        assert cur.start_date == prev.end_date + timedelta(days=1)


class TestMonthArithmetic:
    def test_add_months_clamps_to_month_length(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)

    def test_period_end_is_last_day_of_month(self):
        assert period_end(date(2025, 1, 15), BillingFrequency.MONTHLY) == date(2025, 1, 31)
        assert period_end(date(2025, 2, 1), BillingFrequency.MONTHLY) == date(2025, 2, 28)
        assert period_end(date(2025, 1, 1), BillingFrequency.QUARTERLY) == date(2025, 3, 31)
        assert period_end(date(2025, 7, 1), BillingFrequency.SEMIANNUAL) == date(2025, 12, 31)
        assert period_end(date(2025, 3, 1), BillingFrequency.ANNUAL) == date(2026, 2, 28)

    def test_due_day_clamped_to_short_month(self):
        assert due_date_for(date(2025, 4, 1), 31) == date(2025, 4, 30)
        assert due_date_for(date(2024, 2, 1), 30) == date(2024, 2, 29)
        assert due_date_for(date(2025, 2, 1), 31) == date(2025, 2, 28)
        assert due_date_for(date(2025, 5, 1), 5) == date(2025, 5, 5)


class TestComputeBillingPeriods:
    def test_twelve_monthly_periods_for_a_calendar_year(self):
        periods = compute_billing_periods(
            date(2025, 1, 1), date(2025, 12, 31), BillingFrequency.MONTHLY, 5
        )
        assert len(periods) == 12
        assert [p.period_month for p in periods] == list(range(1, 13))
        for p in periods:
            assert p.due_date.year == p.start_date.year
            assert p.due_date.month == p.start_date.month
            assert p.start_date <= p.end_date
        _assert_contiguous(periods)
        assert periods[-1].end_date == date(2025, 12, 31)

    def test_mid_month_start_gives_short_first_period(self):
        periods = compute_billing_periods(
            date(2025, 1, 15), date(2025, 12, 31), BillingFrequency.MONTHLY, 10
        )
        assert len(periods) == 12
        assert periods[0].start_date == date(2025, 1, 15)
        assert periods[0].end_date == date(2025, 1, 31)
        assert periods[1].start_date == date(2025, 2, 1)
        _assert_contiguous(periods)

    def test_due_day_31_resolves_per_month(self):
        periods = compute_billing_periods(
            date(2025, 1, 1), date(2025, 6, 30), BillingFrequency.MONTHLY, 31
        )
        assert [p.due_date.day for p in periods] == [31, 28, 31, 30, 31, 30]

    def test_quarterly_periods(self):
        periods = compute_billing_periods(
            date(2025, 1, 1), date(2025, 12, 31), BillingFrequency.QUARTERLY, 5
        )
        assert [p.end_date for p in periods] == [
            date(2025, 3, 31), date(2025, 6, 30), date(2025, 9, 30), date(2025, 12, 31),
        ]
        assert [p.due_date for p in periods] == [
            date(2025, 1, 5), date(2025, 4, 5), date(2025, 7, 5), date(2025, 10, 5),
        ]

    def test_last_period_clipped_to_end_date(self):
        periods = compute_billing_periods(
            date(2025, 1, 1), date(2025, 8, 15), BillingFrequency.QUARTERLY, 1
        )
        assert len(periods) == 3
        assert periods[-1].start_date == date(2025, 7, 1)
        assert periods[-1].end_date == date(2025, 8, 15)

    def test_default_horizon_without_end_date(self):
        periods = compute_billing_periods(
            date(2025, 3, 10), None, BillingFrequency.MONTHLY, 5
        )
        horizon = date(2026, 3, 10)
        assert periods[0].start_date == date(2025, 3, 10)
        assert periods[-1].start_date <= horizon <= periods[-1].end_date
        assert len(periods) == 13
        _assert_contiguous(periods)

    def test_default_horizon_includes_anniversary_month(self):
        periods = compute_billing_periods(date(2025, 1, 1), None, BillingFrequency.MONTHLY, 5)
        assert len(periods) == 13
        assert (periods[-1].period_year, periods[-1].period_month) == (2026, 1)
        assert periods[-1].end_date == date(2026, 1, 31)

    def test_deterministic(self):
        args = (date(2025, 2, 14), date(2026, 2, 13), BillingFrequency.MONTHLY, 29)
        assert compute_billing_periods(*args) == compute_billing_periods(*args)

    @pytest.mark.parametrize("due_day", [0, 32, -1])
    def test_out_of_range_due_day_rejected(self, due_day):
        with pytest.raises(ValidationError):
            compute_billing_periods(
                date(2025, 1, 1), date(2025, 12, 31), BillingFrequency.MONTHLY, due_day
            )

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValidationError, match="duration"):
            compute_billing_periods(
                date(2025, 5, 1), date(2025, 4, 1), BillingFrequency.MONTHLY, 5
            )
        with pytest.raises(ValidationError):
            compute_billing_periods(
                date(2025, 5, 1), date(2025, 5, 1), BillingFrequency.MONTHLY, 5
            )
