import calendar
from datetime import date, datetime, timezone
from typing import Optional


def months_ago(months: int, today: Optional[date] = None) -> date:
    """Calendar-aware `today - N months`, clamping the day to the target month's length."""
    today = today or utcnow().date()
    month_index = today.year * 12 + (today.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(today.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
