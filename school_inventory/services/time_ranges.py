from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo

from school_inventory.config import settings


class TimeRange(str, Enum):
    DAY = 'day'
    WEEK = 'week'
    MONTH = 'month'
    YEAR = 'year'


def range_start(time_range: TimeRange, *, now: datetime | None = None, tz_name: str | None = None) -> datetime:
    """Return the UTC lower bound for a reporting range.

    Boundaries are local midnights in the reporting timezone: today, Monday of
    the current week, the first of the month, or January 1st.
    """
    tz = ZoneInfo(tz_name or settings.report_timezone)
    current = (now or datetime.now(tz=timezone.utc)).astimezone(tz)
    start = current.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range == TimeRange.WEEK:
        start = start - timedelta(days=start.weekday())
    elif time_range == TimeRange.MONTH:
        start = start.replace(day=1)
    elif time_range == TimeRange.YEAR:
        start = start.replace(month=1, day=1)
    return start.astimezone(timezone.utc)
