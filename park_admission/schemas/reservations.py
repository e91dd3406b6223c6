import datetime as dt

from pydantic import BaseModel, Field


class ReservationCreatePayload(BaseModel):
    """
    Schema for booking a date. The primary user comes from the X-User-Id header.
    """

    date: dt.date = Field(..., description="Calendar date to reserve (YYYY-MM-DD)")
    additional_user_ids: list[str] = Field(
        default_factory=list, description="Extra occupants attached to the reservation"
    )


class RemoveOccupantPayload(BaseModel):
    user_id: str = Field(..., min_length=1, description="Occupant to remove")
