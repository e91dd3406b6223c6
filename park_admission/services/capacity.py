"""
Per-date booking counters.

Every calendar date has at most one date_capacity row holding max_capacity and
total_bookings. Rows are created lazily with the configured default maximum
the first time a date is touched. Admission is a single conditional UPDATE so
that concurrent admissions for one date are serialized by the database and the
last slot is never handed out twice.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterator, Optional

import structlog
from sqlalchemy.engine import Connection, Engine

from park_admission.config import MAX_DAILY_CAPACITY
from park_admission.db.readers.capacity import get_capacities_between, get_capacity
from park_admission.db.transaction import storage_connection, storage_transaction
from park_admission.db.writers.capacity import (
    decrement_bookings,
    ensure_capacity_row,
    increment_if_available,
    set_max_capacity,
)
from park_admission.errors import CapacityExceeded, ValidationError
from park_admission.utils.datetime import iter_days, utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CapacitySnapshot:
    date: date
    max_capacity: int
    total_bookings: int

    @property
    def remaining_spots(self) -> int:
        return max(0, self.max_capacity - self.total_bookings)

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date.isoformat(),
            "max_capacity": self.max_capacity,
            "total_bookings": self.total_bookings,
            "remaining_spots": self.remaining_spots,
        }


class CapacityLedger:
    """
    Atomic admit/release against DateCapacity rows.

    Methods that mutate accept an optional Connection so callers can make them
    part of a larger transaction; without one the ledger opens its own.

    Example:
        >>> ledger = CapacityLedger(engine, default_max_capacity=10)
        >>> ledger.try_admit(date(2025, 1, 26))
        9
        >>> ledger.release(date(2025, 1, 26))
        True
    """

    def __init__(
        self,
        engine: Engine,
        default_max_capacity: int = MAX_DAILY_CAPACITY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.default_max_capacity = default_max_capacity
        self._clock = clock

    @contextmanager
    def _transaction(
        self, conn: Optional[Connection], operation: str, day: date
    ) -> Iterator[Connection]:
        if conn is not None:
            yield conn
            return
        with storage_transaction(self.engine, f"capacity_{operation}", date=str(day)) as own:
            yield own

    def try_admit(self, day: date, conn: Optional[Connection] = None) -> int:
        """
        Take one slot for day.

        Args:
            day: Calendar date
            conn: Optional connection of an enclosing transaction

        Returns:
            int: Spots remaining after this admission

        Raises:
            CapacityExceeded: if the date is fully booked (nothing is changed)
        """
        now = self._clock()
        with self._transaction(conn, "try_admit", day) as c:
            ensure_capacity_row(c, day, self.default_max_capacity, now)
            if not increment_if_available(c, day, now):
                logger.info("capacity_exhausted", date=str(day))
                raise CapacityExceeded(date=str(day))
            row = get_capacity(c, day)

        return max(0, row.max_capacity - row.total_bookings)

    def release(self, day: date, conn: Optional[Connection] = None) -> bool:
        """
        Give back one slot for day, never going below zero.

        Returns:
            bool: False if there was nothing to release
        """
        with self._transaction(conn, "release", day) as c:
            released = decrement_bookings(c, day, self._clock())

        if not released:
            logger.warning("capacity_release_floored", date=str(day))
        return released

    def snapshot(self, day: date, conn: Optional[Connection] = None) -> CapacitySnapshot:
        """Current counters for day; a missing row reads as zero bookings against the default."""
        if conn is not None:
            row = get_capacity(conn, day)
        else:
            with storage_connection(self.engine, "capacity_snapshot", date=str(day)) as c:
                row = get_capacity(c, day)

        if row is None:
            return CapacitySnapshot(day, self.default_max_capacity, 0)
        return CapacitySnapshot(day, row.max_capacity, row.total_bookings)

    def snapshots_between(self, start: date, end: date) -> list[CapacitySnapshot]:
        """Counters for every day in [start, end], defaults filled in for missing rows."""
        with storage_connection(
            self.engine, "capacity_snapshots_between", start=str(start), end=str(end)
        ) as c:
            rows = get_capacities_between(c, start, end)

        snapshots = []
        for day in iter_days(start, end):
            row = rows.get(day)
            if row is None:
                snapshots.append(CapacitySnapshot(day, self.default_max_capacity, 0))
            else:
                snapshots.append(CapacitySnapshot(day, row.max_capacity, row.total_bookings))
        return snapshots

    def available_dates(self, start: date, end: date) -> list[CapacitySnapshot]:
        """Days in [start, end] that still have at least one spot."""
        return [s for s in self.snapshots_between(start, end) if s.remaining_spots > 0]

    def set_max_capacity(self, day: date, max_capacity: int) -> CapacitySnapshot:
        """
        Change the maximum for day, creating the row if needed.

        Raises:
            ValidationError: if max_capacity is negative or below current bookings
        """
        if max_capacity < 0:
            raise ValidationError("Capacity cannot be negative", date=str(day))

        now = self._clock()
        with self._transaction(None, "set_max_capacity", day) as c:
            ensure_capacity_row(c, day, max_capacity, now)
            if not set_max_capacity(c, day, max_capacity, now):
                raise ValidationError(
                    "Capacity cannot be set below the number of existing bookings",
                    date=str(day),
                )
            row = get_capacity(c, day)

        logger.info("capacity_updated", date=str(day), max_capacity=max_capacity)
        return CapacitySnapshot(day, row.max_capacity, row.total_bookings)
