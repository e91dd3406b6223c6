from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from park_admission.models.capacity import DateCapacity


def get_capacity(conn: Connection, day: date) -> Optional[Any]:
    """
    Fetch the capacity row for a date.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        day (date): Calendar date.

    Returns:
        Optional[Row]: Row with date, max_capacity, total_bookings or None if missing.
    """
    return conn.execute(
        select(
            DateCapacity.date, DateCapacity.max_capacity, DateCapacity.total_bookings
        ).where(DateCapacity.date == day)
    ).first()


def get_capacities_between(conn: Connection, start: date, end: date) -> dict[date, Any]:
    """
    Fetch existing capacity rows for a date range, keyed by date.

    Dates without a row are simply absent from the result.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        start (date): First date (inclusive).
        end (date): Last date (inclusive).
    """
    rows = conn.execute(
        select(DateCapacity.date, DateCapacity.max_capacity, DateCapacity.total_bookings)
        .where(DateCapacity.date >= start)
        .where(DateCapacity.date <= end)
        .order_by(DateCapacity.date)
    ).fetchall()
    return {row.date: row for row in rows}
