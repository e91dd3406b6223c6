from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.engine import Connection

from park_admission.db.writers._upsert import insert_ignore
from park_admission.models.capacity import DateCapacity


def ensure_capacity_row(conn: Connection, day: date, default_max: int, now: datetime) -> bool:
    """
    Create the capacity row for a date if it does not exist yet.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        day (date): Calendar date.
        default_max (int): max_capacity for a newly created row.
        now (datetime): Creation timestamp.

    Returns:
        bool: True if a row was created.
    """
    created = insert_ignore(
        conn,
        DateCapacity,
        {
            "date": day,
            "max_capacity": default_max,
            "total_bookings": 0,
            "created_at": now,
            "updated_at": now,
        },
        ["date"],
    )
    return created > 0


def increment_if_available(conn: Connection, day: date, now: datetime) -> bool:
    """
    Take one booking slot for a date with a single conditional update.

    The WHERE clause makes the check and the increment one atomic statement,
    so two concurrent admissions can never both take the last slot.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        day (date): Calendar date.
        now (datetime): Update timestamp.

    Returns:
        bool: True if a slot was taken, False if the date is full or missing.
    """
    stmt = (
        update(DateCapacity)
        .where(DateCapacity.date == day)
        .where(DateCapacity.total_bookings < DateCapacity.max_capacity)
        .values(total_bookings=DateCapacity.total_bookings + 1, updated_at=now)
    )
    return conn.execute(stmt).rowcount == 1


def decrement_bookings(conn: Connection, day: date, now: datetime) -> bool:
    """
    Give back one booking slot, never going below zero.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        day (date): Calendar date.
        now (datetime): Update timestamp.

    Returns:
        bool: False if there was nothing to release (row missing or already 0).
    """
    stmt = (
        update(DateCapacity)
        .where(DateCapacity.date == day)
        .where(DateCapacity.total_bookings > 0)
        .values(total_bookings=DateCapacity.total_bookings - 1, updated_at=now)
    )
    return conn.execute(stmt).rowcount == 1


def set_max_capacity(conn: Connection, day: date, max_capacity: int, now: datetime) -> bool:
    """
    Change the maximum capacity of a date that already has a row.

    Refuses (returns False) if the date already holds more bookings than the
    new maximum.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        day (date): Calendar date.
        max_capacity (int): New maximum.
        now (datetime): Update timestamp.
    """
    stmt = (
        update(DateCapacity)
        .where(DateCapacity.date == day)
        .where(DateCapacity.total_bookings <= max_capacity)
        .values(max_capacity=max_capacity, updated_at=now)
    )
    return conn.execute(stmt).rowcount == 1
