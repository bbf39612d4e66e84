"""Turning a requested date range into a number of vacation days."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from .exceptions import InvalidRangeError

SATURDAY = 5
SUNDAY = 6
WEEKEND = frozenset({SATURDAY, SUNDAY})


def _as_date(value: date) -> date:
    # datetime is a date subclass; drop the time part so only calendar days compare.
    if isinstance(value, datetime):
        return value.date()
    return value


def count_working_days(start_date: date, end_date: date, exclude_weekends: bool = True) -> int:
    """Count the days between ``start_date`` and ``end_date``, both inclusive.

    Saturdays and Sundays are skipped when ``exclude_weekends`` is set.
    Raises :class:`InvalidRangeError` if the range ends before it starts.
    """

    start = _as_date(start_date)
    end = _as_date(end_date)
    if end < start:
        raise InvalidRangeError(start, end)

    count = 0
    day = start
    while day <= end:
        if not exclude_weekends or day.weekday() not in WEEKEND:
            count += 1
        day += timedelta(days=1)
    return count


@dataclass(frozen=True)
class VacationPolicy:
    """A company's day-counting rules as read at submission time."""

    exclude_weekends: bool = True
    work_days: int = 5

    def count(self, start_date: date, end_date: date) -> int:
        return count_working_days(start_date, end_date, self.exclude_weekends)
