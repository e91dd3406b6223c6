# models/reservations.py

import enum

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String
from sqlalchemy.sql import func

from park_admission.models.base import Base


class ReservationStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class OccupantStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class Reservation(Base):
    """
    ORM model for a single-day park reservation.

    The primary user owns the reservation; every person attached to it
    (primary included) has a ReservationOccupant row. User ids come from the
    external identity provider and are stored as opaque strings.
    """

    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True)
    reservation_date = Column(
        Date, ForeignKey("date_capacity.date"), nullable=False, index=True
    )
    primary_user_id = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=ReservationStatus.ACTIVE.value)
    can_transfer = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class ReservationOccupant(Base):
    """
    ORM model linking a user to a reservation.

    The set of ACTIVE occupant rows of a user, projected onto the dates of
    their ACTIVE reservations, feeds the consecutive-day check. Cancelled rows
    are kept for history and re-activated if the same user is transferred back in.
    """

    __tablename__ = "reservation_occupants"

    reservation_id = Column(
        String(36),
        ForeignKey("reservations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(String(64), primary_key=True, index=True)
    is_primary = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default=OccupantStatus.ACTIVE.value)
    added_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
