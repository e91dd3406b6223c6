"""UTC datetime and calendar-day utilities."""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator


def utc_now() -> datetime:
    """
    Return current UTC time as timezone-aware datetime.

    This function should be used instead of datetime.now() or datetime.utcnow()
    to ensure all timestamps are timezone-aware and stored in UTC.

    Returns:
        Timezone-aware datetime in UTC

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes and convert aware ones to UTC.

    Some drivers (SQLite) hand back naive datetimes for timezone-aware
    columns; everything this service writes is UTC, so naive means UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_calendar_day(value: date | datetime) -> date:
    """
    Strip the time-of-day from a date or datetime using UTC day boundaries.

    Example:
        >>> to_calendar_day(datetime(2025, 1, 24, 23, 30, tzinfo=timezone.utc))
        datetime.date(2025, 1, 24)
    """
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    return value


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
