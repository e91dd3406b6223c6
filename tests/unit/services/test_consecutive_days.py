"""
Unit tests for the consecutive-day rule.
"""

from __future__ import annotations

import itertools
from datetime import date, datetime, timezone

import pytest

from park_admission.services.consecutive_days import (
    guard_window,
    longest_consecutive_run,
    would_exceed,
)


def d(day: int, month: int = 1) -> date:
    return date(2025, month, day)


@pytest.mark.unit
def test_empty_input_yields_run_of_one() -> None:
    """No booking yet reads as a run of 1, not 0."""
    assert longest_consecutive_run([]) == 1


@pytest.mark.unit
def test_single_date_is_run_of_one() -> None:
    assert longest_consecutive_run([d(24)]) == 1


@pytest.mark.unit
def test_run_counts_back_to_back_days() -> None:
    assert longest_consecutive_run([d(24), d(25), d(26)]) == 3


@pytest.mark.unit
def test_gap_resets_streak_and_longest_is_kept() -> None:
    dates = [d(1), d(2), d(3), d(4), d(10), d(11)]
    assert longest_consecutive_run(dates) == 4


@pytest.mark.unit
def test_run_crosses_month_boundary() -> None:
    assert longest_consecutive_run([d(30), d(31), d(1, month=2)]) == 3


@pytest.mark.unit
def test_run_is_invariant_under_reordering() -> None:
    dates = [d(24), d(25), d(27), d(28), d(29)]
    expected = longest_consecutive_run(dates)
    for permutation in itertools.permutations(dates):
        assert longest_consecutive_run(permutation) == expected


@pytest.mark.unit
def test_duplicates_do_not_extend_run() -> None:
    dates = [d(24), d(25), d(26)]
    assert longest_consecutive_run(dates + dates + [d(25)]) == longest_consecutive_run(dates)


@pytest.mark.unit
def test_datetimes_are_compared_by_utc_calendar_day() -> None:
    dates = [
        datetime(2025, 1, 24, 23, 59, tzinfo=timezone.utc),
        datetime(2025, 1, 24, 0, 1, tzinfo=timezone.utc),
        datetime(2025, 1, 25, 8, 0, tzinfo=timezone.utc),
    ]
    assert longest_consecutive_run(dates) == 2


@pytest.mark.unit
def test_third_consecutive_day_is_allowed() -> None:
    """Jan24 and Jan25 booked, Jan26 makes a run of exactly 3."""
    assert would_exceed([d(24), d(25)], d(26), max_consecutive=3) is False


@pytest.mark.unit
def test_fourth_consecutive_day_is_rejected() -> None:
    """Jan24-26 booked, Jan27 would make a run of 4."""
    assert would_exceed([d(24), d(25), d(26)], d(27), max_consecutive=3) is True


@pytest.mark.unit
def test_candidate_filling_a_gap_is_rejected_when_runs_merge() -> None:
    assert would_exceed([d(23), d(24), d(26), d(27)], d(25), max_consecutive=3) is True


@pytest.mark.unit
def test_candidate_already_booked_does_not_change_run() -> None:
    assert would_exceed([d(24), d(25), d(26)], d(25), max_consecutive=3) is False


@pytest.mark.unit
def test_guard_window_spans_max_days_each_side() -> None:
    assert guard_window(d(10), max_consecutive=3) == (d(7), d(13))
