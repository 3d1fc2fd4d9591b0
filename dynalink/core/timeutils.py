"""UTC time helpers.

Timestamps are stored as naive UTC datetimes in plain ``DateTime`` columns so
they compare the same way on PostgreSQL and SQLite.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Return the current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def last_days(now: datetime, days: int):
    """Start of each of the last ``days`` UTC days, oldest first, ending today."""
    today = start_of_day(now)
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def to_epoch_ms(value: datetime) -> int:
    """Milliseconds since the Unix epoch for a naive UTC datetime."""
    return int(value.replace(tzinfo=timezone.utc).timestamp() * 1000)
