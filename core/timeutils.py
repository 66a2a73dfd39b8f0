"""
Time helpers shared by the loader, aggregation engine, cache and rate limiter.

All timestamps stored by the pipeline are naive UTC datetimes.
"""

from calendar import monthrange
from datetime import date, datetime, timezone
from typing import Tuple, Union


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def truncate_to_hour(value: datetime) -> datetime:
    return to_naive_utc(value).replace(minute=0, second=0, microsecond=0)


def as_date(value: Union[date, datetime, str]) -> date:
    """Coerce a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return to_naive_utc(value).date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last calendar day of the given month."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    last_day = monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)
