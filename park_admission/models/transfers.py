import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, text

from park_admission.models.base import Base


class TransferState(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"


class TransferRequest(Base):
    """
    ORM model for a request to move an occupant slot to another user.

    slot_user_id is the occupant whose spot moves (the initiator unless the
    primary user is transferring someone else's spot). A stored state of
    PENDING is never trusted on its own: once expires_at has passed the
    transfer is treated as EXPIRED, and the row is rewritten only when touched.

    The partial unique index allows at most one PENDING row per
    (reservation, target user) pair.
    """

    __tablename__ = "transfer_requests"

    id = Column(String(36), primary_key=True)
    reservation_id = Column(
        String(36),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    initiator_id = Column(String(64), nullable=False, index=True)
    target_user_id = Column(String(64), nullable=False, index=True)
    slot_user_id = Column(String(64), nullable=False)
    state = Column(String(16), nullable=False, default=TransferState.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_transfer_requests_pending_target",
            "reservation_id",
            "target_user_id",
            unique=True,
            postgresql_where=text("state = 'PENDING'"),
            sqlite_where=text("state = 'PENDING'"),
        ),
    )
