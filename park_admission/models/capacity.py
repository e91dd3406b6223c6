"""SQLAlchemy model for per-day booking capacity."""

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Integer
from sqlalchemy.sql import func

from park_admission.models.base import Base


class DateCapacity(Base):
    """
    ORM model for the bookable capacity of one calendar date.

    Rows are created lazily the first time a date is booked, using the
    configured default maximum. total_bookings is only ever changed through
    conditional updates so it stays within [0, max_capacity] under concurrent
    admissions.
    """

    __tablename__ = "date_capacity"

    date = Column(Date, primary_key=True)
    max_capacity = Column(Integer, nullable=False)
    total_bookings = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("max_capacity >= 0", name="ck_date_capacity_max_non_negative"),
        CheckConstraint("total_bookings >= 0", name="ck_date_capacity_bookings_non_negative"),
        CheckConstraint(
            "total_bookings <= max_capacity", name="ck_date_capacity_bookings_lte_max"
        ),
    )
