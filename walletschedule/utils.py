"""Utility functions for walletschedule.

All date-only comparisons in the engine work on UTC calendar days. These
helpers convert between aware timestamps and days, and implement the
month-length clamping shared by the evaluator and the next-occurrence
calculator.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Union

DateLike = Union[date, datetime]


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_utc_datetime(value: DateLike) -> datetime:
    """Coerce a date or datetime to an aware UTC datetime.

    Plain dates become midnight UTC. Naive datetimes are taken to be UTC
    already.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def to_day(value: DateLike) -> date:
    """Truncate a date or datetime to its UTC calendar day."""
    if isinstance(value, datetime):
        return to_utc_datetime(value).date()
    return value


def day_bounds(day: DateLike) -> tuple[datetime, datetime]:
    """Return the half-open UTC window [day 00:00, day+1 00:00)."""
    start = to_utc_datetime(to_day(day))
    return start, start + timedelta(days=1)


def last_day_of_month(year: int, month: int) -> int:
    """Number of days in the given month."""
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping ``day`` to the month's last day."""
    return date(year, month, min(day, last_day_of_month(year, month)))
