from datetime import date
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from park_admission.models.reservations import (
    OccupantStatus,
    Reservation,
    ReservationOccupant,
    ReservationStatus,
)


def get_reservation(conn: Connection, reservation_id: str) -> Optional[Any]:
    """
    Fetch a reservation by id.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        reservation_id (str): Reservation id.

    Returns:
        Optional[Row]: Reservation row or None if not found.
    """
    return conn.execute(select(Reservation).where(Reservation.id == reservation_id)).first()


def get_active_occupants(conn: Connection, reservation_id: str) -> list[Any]:
    """
    Fetch the ACTIVE occupant rows of a reservation, primary first.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        reservation_id (str): Reservation id.
    """
    return list(
        conn.execute(
            select(ReservationOccupant)
            .where(ReservationOccupant.reservation_id == reservation_id)
            .where(ReservationOccupant.status == OccupantStatus.ACTIVE.value)
            .order_by(ReservationOccupant.is_primary.desc(), ReservationOccupant.added_at)
        ).fetchall()
    )


def get_active_dates_for_user(
    conn: Connection,
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[date]:
    """
    Dates of ACTIVE reservations on which the user holds an ACTIVE occupant row.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        user_id (str): User id.
        start (Optional[date]): Lower bound (inclusive), unbounded if None.
        end (Optional[date]): Upper bound (inclusive), unbounded if None.

    Returns:
        list[date]: Sorted reservation dates.
    """
    stmt = (
        select(Reservation.reservation_date)
        .join(ReservationOccupant, ReservationOccupant.reservation_id == Reservation.id)
        .where(ReservationOccupant.user_id == user_id)
        .where(ReservationOccupant.status == OccupantStatus.ACTIVE.value)
        .where(Reservation.status == ReservationStatus.ACTIVE.value)
    )
    if start is not None:
        stmt = stmt.where(Reservation.reservation_date >= start)
    if end is not None:
        stmt = stmt.where(Reservation.reservation_date <= end)

    result = conn.execute(stmt.order_by(Reservation.reservation_date))
    return list(result.scalars().all())


def users_with_reservation_on(conn: Connection, user_ids: list[str], day: date) -> list[str]:
    """
    Return the subset of user_ids already holding an ACTIVE spot on day.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        user_ids (list[str]): Users to check.
        day (date): Calendar date.
    """
    if not user_ids:
        return []

    result = conn.execute(
        select(ReservationOccupant.user_id)
        .join(Reservation, ReservationOccupant.reservation_id == Reservation.id)
        .where(ReservationOccupant.user_id.in_(user_ids))
        .where(ReservationOccupant.status == OccupantStatus.ACTIVE.value)
        .where(Reservation.status == ReservationStatus.ACTIVE.value)
        .where(Reservation.reservation_date == day)
    )
    return list(result.scalars().all())
