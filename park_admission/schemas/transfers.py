from typing import Literal, Optional

from pydantic import BaseModel, Field


class TransferCreatePayload(BaseModel):
    """
    Schema for proposing a transfer. The initiator comes from the X-User-Id header.
    """

    reservation_id: str = Field(..., min_length=1, description="Reservation holding the spot")
    target_user_id: str = Field(..., min_length=1, description="User who receives the spot")
    slot_user_id: Optional[str] = Field(
        None, description="Occupant whose spot moves (defaults to the initiator)"
    )


class TransferRespondPayload(BaseModel):
    action: Literal["accept", "decline"] = Field(..., description="Recipient's answer")
