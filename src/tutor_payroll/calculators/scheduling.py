"""Assignment scheduling window checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Iterable

from tutor_payroll.calculators.pay_periods import to_date


def parse_time_to_minutes(value: time | str) -> int:
    """Minutes since midnight for a time or an HH:MM string."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def duration_minutes(start_time: time | str, end_time: time | str) -> int:
    """Length of a session in minutes (negative when end precedes start)."""
    return parse_time_to_minutes(end_time) - parse_time_to_minutes(start_time)


@dataclass(frozen=True)
class TimeRange:
    """Allowed time-of-day range, inclusive at both ends."""

    start: int  # minutes since midnight
    end: int

    @classmethod
    def from_raw(cls, raw: TimeRange | dict[str, Any]) -> TimeRange:
        if isinstance(raw, TimeRange):
            return raw
        return cls(
            start=parse_time_to_minutes(raw["start"]),
            end=parse_time_to_minutes(raw["end"]),
        )

    def covers(self, start: int, end: int) -> bool:
        return start >= self.start and end <= self.end


@dataclass(frozen=True)
class AssignmentWindow:
    """Dates, weekdays (Monday=0..Sunday=6) and time ranges a session may use.

    Empty ``allowed_days`` or ``allowed_time_ranges`` means unrestricted.
    """

    start_date: date
    end_date: date | None = None
    allowed_days: frozenset[int] = field(default_factory=frozenset)
    allowed_time_ranges: tuple[TimeRange, ...] = ()

    @classmethod
    def from_raw(
        cls,
        start_date: date | str,
        end_date: date | str | None = None,
        allowed_days: Iterable[int] | None = None,
        allowed_time_ranges: Iterable[TimeRange | dict[str, Any]] | None = None,
    ) -> AssignmentWindow:
        return cls(
            start_date=to_date(start_date),
            end_date=to_date(end_date) if end_date else None,
            allowed_days=frozenset(int(day) for day in (allowed_days or [])),
            allowed_time_ranges=tuple(TimeRange.from_raw(r) for r in (allowed_time_ranges or [])),
        )


def is_within_assignment_window(
    session_date: date | str,
    start_time: time | str,
    end_time: time | str,
    window: AssignmentWindow,
) -> bool:
    """Check a session's date and time span against its assignment window."""
    day = to_date(session_date)
    start = parse_time_to_minutes(start_time)
    end = parse_time_to_minutes(end_time)

    if end <= start:
        return False

    if day < window.start_date:
        return False
    if window.end_date is not None and day > window.end_date:
        return False

    if window.allowed_days and day.weekday() not in window.allowed_days:
        return False

    if window.allowed_time_ranges:
        if not any(r.covers(start, end) for r in window.allowed_time_ranges):
            return False

    return True
