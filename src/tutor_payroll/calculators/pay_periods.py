"""Pay period arithmetic.

Every caller derives the same canonical window from a raw date: the period
starts on the Monday on or before the date and ends on the following Sunday.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

PERIOD_LENGTH_DAYS = 7


@dataclass(frozen=True)
class PayPeriodRange:
    """Inclusive start/end dates of a pay period."""

    start: date
    end: date

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.end


def to_date(value: date | datetime | str) -> date:
    """Coerce a date, datetime or YYYY-MM-DD string to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def get_pay_period_start(value: date | datetime | str) -> date:
    """Monday on or before the given date."""
    day = to_date(value)
    return day - timedelta(days=day.weekday())


def get_pay_period_range(value: date | datetime | str) -> PayPeriodRange:
    """Canonical Monday-to-Sunday window containing the given date."""
    start = get_pay_period_start(value)
    return PayPeriodRange(start=start, end=start + timedelta(days=PERIOD_LENGTH_DAYS - 1))
