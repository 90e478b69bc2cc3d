"""Time utilities (UTC now, calendar month arithmetic, day windows)."""
from __future__ import annotations
import calendar
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def add_months(start: datetime, months: int) -> datetime:
    """Add whole calendar months, clamping the day to the target month's length.

    Jan 31 + 1 month -> Feb 28 (or 29 in leap years).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)

def window_days(start: datetime, end: datetime) -> int:
    """Whole days covered by [start, end], at least 1."""
    seconds = (end - start).total_seconds()
    return max(1, int(-(-seconds // 86400)))


__all__ = ["utc_now", "ensure_utc", "add_months", "window_days"]
