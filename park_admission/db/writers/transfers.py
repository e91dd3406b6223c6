from datetime import datetime
from typing import Optional

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from park_admission.models.transfers import TransferRequest, TransferState


def insert_transfer(
    conn: Connection,
    transfer_id: str,
    reservation_id: str,
    initiator_id: str,
    target_user_id: str,
    slot_user_id: str,
    now: datetime,
    expires_at: datetime,
) -> None:
    """
    Insert a PENDING transfer request.

    Raises:
        sqlalchemy.exc.IntegrityError: if a PENDING row already exists for
        the same (reservation, target user) pair.
    """
    conn.execute(
        insert(TransferRequest).values(
            id=transfer_id,
            reservation_id=reservation_id,
            initiator_id=initiator_id,
            target_user_id=target_user_id,
            slot_user_id=slot_user_id,
            state=TransferState.PENDING.value,
            created_at=now,
            decided_at=None,
            expires_at=expires_at,
        )
    )


def transition_transfer(
    conn: Connection,
    transfer_id: str,
    from_state: TransferState,
    to_state: TransferState,
    now: datetime,
    unexpired_at: Optional[datetime] = None,
) -> bool:
    """
    Compare-and-swap the state of a transfer.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        transfer_id (str): Transfer id.
        from_state (TransferState): Required current state.
        to_state (TransferState): New state.
        now (datetime): decided_at timestamp.
        unexpired_at (Optional[datetime]): If given, only rows with
            expires_at > unexpired_at are updated.

    Returns:
        bool: True if this call performed the transition, False if another
        request got there first (or the transfer has expired).
    """
    stmt = (
        update(TransferRequest)
        .where(TransferRequest.id == transfer_id)
        .where(TransferRequest.state == from_state.value)
        .values(state=to_state.value, decided_at=now)
    )
    if unexpired_at is not None:
        stmt = stmt.where(TransferRequest.expires_at > unexpired_at)
    return conn.execute(stmt).rowcount == 1
