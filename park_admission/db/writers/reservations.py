from datetime import date, datetime

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from park_admission.db.writers._upsert import upsert
from park_admission.models.reservations import (
    OccupantStatus,
    Reservation,
    ReservationOccupant,
    ReservationStatus,
)


def insert_reservation(
    conn: Connection,
    reservation_id: str,
    day: date,
    primary_user_id: str,
    additional_user_ids: list[str],
    now: datetime,
) -> None:
    """
    Insert an ACTIVE reservation together with its occupant rows.

    Args:
        conn (Connection): SQLAlchemy DB connection (within transaction).
        reservation_id (str): New reservation id.
        day (date): Reservation date.
        primary_user_id (str): Owning user.
        additional_user_ids (list[str]): Extra occupants (primary excluded).
        now (datetime): Creation timestamp.
    """
    conn.execute(
        insert(Reservation).values(
            id=reservation_id,
            reservation_date=day,
            primary_user_id=primary_user_id,
            status=ReservationStatus.ACTIVE.value,
            can_transfer=True,
            created_at=now,
            updated_at=now,
        )
    )

    occupants = [
        {
            "reservation_id": reservation_id,
            "user_id": user_id,
            "is_primary": user_id == primary_user_id,
            "status": OccupantStatus.ACTIVE.value,
            "added_at": now,
            "cancelled_at": None,
        }
        for user_id in [primary_user_id, *additional_user_ids]
    ]
    conn.execute(insert(ReservationOccupant), occupants)


def mark_reservation_cancelled(conn: Connection, reservation_id: str, now: datetime) -> bool:
    """
    Flip an ACTIVE reservation to CANCELLED.

    Returns:
        bool: False if the reservation was not ACTIVE (already cancelled by a
        concurrent request), in which case nothing changed.
    """
    stmt = (
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .where(Reservation.status == ReservationStatus.ACTIVE.value)
        .values(status=ReservationStatus.CANCELLED.value, updated_at=now)
    )
    return conn.execute(stmt).rowcount == 1


def cancel_all_occupants(conn: Connection, reservation_id: str, now: datetime) -> int:
    """
    Cancel every ACTIVE occupant row of a reservation.

    Returns:
        int: Number of occupant rows cancelled.
    """
    stmt = (
        update(ReservationOccupant)
        .where(ReservationOccupant.reservation_id == reservation_id)
        .where(ReservationOccupant.status == OccupantStatus.ACTIVE.value)
        .values(status=OccupantStatus.CANCELLED.value, cancelled_at=now)
    )
    return conn.execute(stmt).rowcount


def cancel_occupant(conn: Connection, reservation_id: str, user_id: str, now: datetime) -> bool:
    """
    Cancel one ACTIVE occupant row.

    Returns:
        bool: False if the user held no ACTIVE row on the reservation.
    """
    stmt = (
        update(ReservationOccupant)
        .where(ReservationOccupant.reservation_id == reservation_id)
        .where(ReservationOccupant.user_id == user_id)
        .where(ReservationOccupant.status == OccupantStatus.ACTIVE.value)
        .values(status=OccupantStatus.CANCELLED.value, cancelled_at=now)
    )
    return conn.execute(stmt).rowcount == 1


def activate_occupant(
    conn: Connection, reservation_id: str, user_id: str, is_primary: bool, now: datetime
) -> None:
    """
    Create the occupant row for a user, or re-activate a previously cancelled one.

    Args:
        conn (Connection): SQLAlchemy DB connection (within transaction).
        reservation_id (str): Reservation id.
        user_id (str): Incoming occupant.
        is_primary (bool): Whether the incoming occupant takes the primary slot.
        now (datetime): Activation timestamp.
    """
    upsert(
        conn,
        ReservationOccupant,
        {
            "reservation_id": reservation_id,
            "user_id": user_id,
            "is_primary": is_primary,
            "status": OccupantStatus.ACTIVE.value,
            "added_at": now,
            "cancelled_at": None,
        },
        conflict_columns=["reservation_id", "user_id"],
        update_columns=["is_primary", "status", "added_at", "cancelled_at"],
    )


def set_primary_user(conn: Connection, reservation_id: str, user_id: str, now: datetime) -> None:
    """
    Record a new primary user on a reservation.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        reservation_id (str): Reservation id.
        user_id (str): New primary user.
        now (datetime): Update timestamp.
    """
    conn.execute(
        update(Reservation)
        .where(Reservation.id == reservation_id)
        .values(primary_user_id=user_id, updated_at=now)
    )
