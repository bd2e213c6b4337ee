"""
Calendar helpers for subscription periods.

Month arithmetic clamps to the last day of the target month:
Jan 31 + 1 month = Feb 28 (Feb 29 in leap years), never Mar 3.
"""
import calendar
import math
from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive values (SQLite round-trip) are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    if months < 0:
        raise ValueError("months must be non-negative")
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def ceil_days(delta: timedelta) -> int:
    """Whole days, rounded up. Negative deltas give 0."""
    seconds = delta.total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / SECONDS_PER_DAY)
