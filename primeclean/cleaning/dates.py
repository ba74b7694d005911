"""Canonical calendar-date and wall-clock handling.

Bookings are classified by their calendar date only. Dates are parsed into
plain :class:`datetime.date` objects and stored as ISO ``YYYY-MM-DD`` text,
which compares correctly as a string in SQL. Nothing in here builds an aware
datetime, so the process or viewer time zone can never move a booking to a
different day.
"""

from __future__ import annotations

import calendar
import datetime as dt

from .errors import ValidationError

PERIODS = ("daily", "weekly", "monthly", "yearly")


def parse_date(value: str | dt.date | None, *, field: str = "date") -> dt.date:
    if isinstance(value, dt.datetime):
        raise ValidationError(f"{field} must be a calendar date, not a timestamp")
    if isinstance(value, dt.date):
        return value
    if not value:
        raise ValidationError(f"{field} is required")
    try:
        return dt.date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid {field} format. Use YYYY-MM-DD") from None


def parse_time(value: str | dt.time | None, *, field: str = "time") -> str:
    """Normalise a wall-clock value to ``HH:MM``."""

    if isinstance(value, dt.time):
        return value.strftime("%H:%M")
    if not value:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return dt.datetime.strptime(text, fmt).strftime("%H:%M")
        except ValueError:
            continue
    raise ValidationError(f"Invalid {field} format. Use HH:MM")


def parse_range(
    start: str | dt.date | None, end: str | dt.date | None
) -> tuple[dt.date, dt.date]:
    start_date = parse_date(start, field="start date")
    end_date = parse_date(end, field="end date")
    if end_date < start_date:
        raise ValidationError("End date must not be before start date")
    return start_date, end_date


def combine(day: str, clock: str) -> dt.datetime:
    """Return the naive local start instant of a booking."""

    return dt.datetime.combine(dt.date.fromisoformat(day), dt.time.fromisoformat(clock))


def month_bounds(today: dt.date) -> tuple[dt.date, dt.date]:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def period_bounds(period: str, today: dt.date) -> tuple[dt.date, dt.date]:
    if period == "daily":
        return today, today
    if period == "weekly":
        start = today - dt.timedelta(days=today.weekday())
        return start, start + dt.timedelta(days=6)
    if period == "monthly":
        return month_bounds(today)
    if period == "yearly":
        return dt.date(today.year, 1, 1), dt.date(today.year, 12, 31)
    raise ValidationError(f"Invalid period {period!r}. Use one of: {', '.join(PERIODS)}")
