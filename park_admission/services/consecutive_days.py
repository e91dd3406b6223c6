"""
Consecutive-day limit on a user's bookings.

Pure functions, no I/O. Dates are compared as UTC calendar days; datetimes are
stripped to their day before anything else happens.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Union

from park_admission.config import MAX_CONSECUTIVE_DAYS
from park_admission.utils.datetime import to_calendar_day

DayLike = Union[date, datetime]

_ONE_DAY = timedelta(days=1)


def longest_consecutive_run(dates: Iterable[DayLike]) -> int:
    """
    Length of the longest run of back-to-back calendar days.

    Duplicates count once and input order does not matter. An empty input
    yields 1, meaning "no booking yet" rather than a run of zero.

    Example:
        >>> longest_consecutive_run([date(2025, 1, 25), date(2025, 1, 24), date(2025, 1, 27)])
        2
    """
    days = sorted({to_calendar_day(d) for d in dates})
    if not days:
        return 1

    longest = 1
    streak = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == _ONE_DAY:
            streak += 1
        else:
            streak = 1
        longest = max(longest, streak)
    return longest


def would_exceed(
    existing: Iterable[DayLike],
    candidate: DayLike,
    max_consecutive: int = MAX_CONSECUTIVE_DAYS,
) -> bool:
    """
    Whether booking candidate would create a run longer than max_consecutive.

    Args:
        existing: The user's active reservation dates
        candidate: Date being requested
        max_consecutive: Longest allowed run

    Returns:
        bool: True if the booking must be rejected
    """
    return longest_consecutive_run([*existing, candidate]) > max_consecutive


def guard_window(candidate: DayLike, max_consecutive: int = MAX_CONSECUTIVE_DAYS) -> tuple[date, date]:
    """
    Date range of existing bookings that can affect a run through candidate.

    A run that includes candidate and exceeds max_consecutive days always has a
    violating sub-run touching candidate that lies within max_consecutive days
    on either side, so only that window needs loading.
    """
    day = to_calendar_day(candidate)
    span = timedelta(days=max_consecutive)
    return day - span, day + span
