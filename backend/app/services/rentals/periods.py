"""Billing period calculator.

Turns a lease's start date, optional end date, billing frequency and due day
into an ordered list of calendar billing periods. Pure functions, no I/O.

Periods are calendar-month aligned: a period starting on any day of month M
ends on the last day of month ``M + n - 1`` (n = 1/3/6/12). The first period of
a lease starting mid-month is therefore short, and every later period starts
on the 1st. The due date sits in the period's starting month, clamped to that
month's length (due day 31 in April → 30 April).
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date, timedelta

from app.models.lease import BillingFrequency
from app.services.rentals.errors import ValidationError

# Only used to estimate how many periods a lease spans; never for boundaries.
_APPROX_PERIOD_DAYS = {
    BillingFrequency.MONTHLY: 30,
    BillingFrequency.QUARTERLY: 90,
    BillingFrequency.SEMIANNUAL: 180,
    BillingFrequency.ANNUAL: 365,
}


@dataclass(frozen=True)
class BillingPeriod:
    period_year: int
    period_month: int
    start_date: date
    end_date: date
    due_date: date


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def add_months(value: date, months: int) -> date:
    """Same day *months* later, clamped to the target month's length."""
    year, month = _shift_month(value.year, value.month, months)
    return date(year, month, min(value.day, last_day_of_month(year, month)))


def period_end(period_start: date, frequency: BillingFrequency) -> date:
    """Last day of the month ``frequency.months - 1`` months after *period_start*."""
    year, month = _shift_month(period_start.year, period_start.month, frequency.months - 1)
    return date(year, month, last_day_of_month(year, month))


def due_date_for(period_start: date, due_day_of_month: int) -> date:
    last = last_day_of_month(period_start.year, period_start.month)
    return period_start.replace(day=min(due_day_of_month, last))


def effective_end_date(
    start_date: date, end_date: date | None, default_term_months: int = 12
) -> date:
    if end_date is not None:
        return end_date
    return add_months(start_date, default_term_months)


def estimate_period_count(start_date: date, end_date: date, frequency: BillingFrequency) -> int:
    total_days = (end_date - start_date).days
    return math.ceil(total_days / _APPROX_PERIOD_DAYS[frequency])


def compute_billing_periods(
    start_date: date,
    end_date: date | None,
    frequency: BillingFrequency,
    due_day_of_month: int,
    *,
    default_term_months: int = 12,
) -> list[BillingPeriod]:
    """Return the lease's billing periods, oldest first.

    Consecutive periods never overlap and never leave a gap: each period
    starts the day after the previous one ends. Raises ``ValidationError``
    for an out-of-range due day or a non-positive lease duration.
    """
    if not 1 <= due_day_of_month <= 31:
        raise ValidationError("Due day of month must be between 1 and 31")

    frequency = BillingFrequency(frequency)
    last_date = effective_end_date(start_date, end_date, default_term_months)
    if estimate_period_count(start_date, last_date, frequency) <= 0:
        raise ValidationError("Lease duration is invalid")

    periods: list[BillingPeriod] = []
    current = start_date
    while current <= last_date:
        end = period_end(current, frequency)
        if end_date is not None and end > last_date:
            end = last_date
        periods.append(
            BillingPeriod(
                period_year=current.year,
                period_month=current.month,
                start_date=current,
                end_date=end,
                due_date=due_date_for(current, due_day_of_month),
            )
        )
        current = end + timedelta(days=1)
    return periods
