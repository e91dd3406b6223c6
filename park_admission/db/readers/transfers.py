from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.engine import Connection

from park_admission.models.reservations import Reservation
from park_admission.models.transfers import TransferRequest, TransferState

_TRANSFER_COLUMNS = (
    TransferRequest.id,
    TransferRequest.reservation_id,
    TransferRequest.initiator_id,
    TransferRequest.target_user_id,
    TransferRequest.slot_user_id,
    TransferRequest.state,
    TransferRequest.created_at,
    TransferRequest.decided_at,
    TransferRequest.expires_at,
    Reservation.reservation_date,
)


def _transfer_select() -> Any:
    return select(*_TRANSFER_COLUMNS).join(
        Reservation, Reservation.id == TransferRequest.reservation_id
    )


def get_transfer(conn: Connection, transfer_id: str) -> Optional[Any]:
    """
    Fetch a transfer request joined with its reservation date.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        transfer_id (str): Transfer id.

    Returns:
        Optional[Row]: Transfer row (with reservation_date) or None if not found.
    """
    return conn.execute(_transfer_select().where(TransferRequest.id == transfer_id)).first()


def find_open_transfer(
    conn: Connection, reservation_id: str, target_user_id: str, now: datetime
) -> Optional[Any]:
    """
    Find the PENDING, not yet expired transfer for a (reservation, target) pair.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        reservation_id (str): Reservation id.
        target_user_id (str): Target user id.
        now (datetime): Current time; rows with expires_at <= now are ignored.
    """
    return conn.execute(
        _transfer_select()
        .where(TransferRequest.reservation_id == reservation_id)
        .where(TransferRequest.target_user_id == target_user_id)
        .where(TransferRequest.state == TransferState.PENDING.value)
        .where(TransferRequest.expires_at > now)
    ).first()


def list_open_transfers(
    conn: Connection,
    now: datetime,
    target_user_id: Optional[str] = None,
    initiator_id: Optional[str] = None,
) -> list[Any]:
    """
    List PENDING transfers that have not expired, newest first.

    Expired rows whose stored state still reads PENDING are excluded without
    being rewritten.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        now (datetime): Current time.
        target_user_id (Optional[str]): Restrict to transfers addressed to this user.
        initiator_id (Optional[str]): Restrict to transfers created by this user.
    """
    stmt = (
        _transfer_select()
        .where(TransferRequest.state == TransferState.PENDING.value)
        .where(TransferRequest.expires_at > now)
    )
    if target_user_id is not None:
        stmt = stmt.where(TransferRequest.target_user_id == target_user_id)
    if initiator_id is not None:
        stmt = stmt.where(TransferRequest.initiator_id == initiator_id)

    return list(conn.execute(stmt.order_by(TransferRequest.created_at.desc())).fetchall())


def list_stale_transfers(
    conn: Connection, reservation_id: str, target_user_id: str, now: datetime
) -> list[Any]:
    """
    PENDING rows of a (reservation, target) pair whose deadline has passed.

    These still occupy the pending slot of the partial unique index until they
    are rewritten as EXPIRED.
    """
    return list(
        conn.execute(
            _transfer_select()
            .where(TransferRequest.reservation_id == reservation_id)
            .where(TransferRequest.target_user_id == target_user_id)
            .where(TransferRequest.state == TransferState.PENDING.value)
            .where(TransferRequest.expires_at <= now)
        ).fetchall()
    )
