"""Calendar arithmetic for month buckets and recurring schedules.

Month arithmetic clamps the day of month to the length of the target
month: Jan 31 + 1 month is Feb 28 (Feb 29 in leap years), never Mar 3.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from src.models.schemas import Frequency

_DAY_STEPS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def add_months(d: date, months: int) -> date:
    """Shift *d* by whole calendar months, clamping to the month's last day."""
    index = d.year * 12 + (d.month - 1) + months
    year, month_zero = divmod(index, 12)
    month = month_zero + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def advance(d: date, frequency: Frequency) -> date:
    """Return the date one *frequency* period after *d*."""
    frequency = Frequency(frequency)
    if frequency in _DAY_STEPS:
        return d + timedelta(days=_DAY_STEPS[frequency])
    return add_months(d, _MONTH_STEPS[frequency])


def window_start(reference: date, months: int) -> date:
    """First day of a trailing window of *months* ending at *reference*."""
    return add_months(reference, -months)


def month_key(d: date) -> str:
    return d.strftime("%Y-%m")


def month_label(d: date) -> str:
    return f"{calendar.month_abbr[d.month]} {d.year}"


def trailing_month_starts(reference: date, count: int) -> list[date]:
    """First-of-month dates for *count* months ending at *reference*'s month.

    Oldest first, so the reference month is the last element.
    """
    first = reference.replace(day=1)
    return [add_months(first, -offset) for offset in range(count - 1, -1, -1)]
