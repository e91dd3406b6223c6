from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from park_admission.dependencies import (
    get_client_address,
    get_current_user_id,
    get_transfer_workflow,
)
from park_admission.errors import AdmissionError
from park_admission.schemas.transfers import TransferCreatePayload, TransferRespondPayload
from park_admission.services.transfers import TransferWorkflow

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/transfers", status_code=status.HTTP_200_OK)
def list_transfers(
    user_id: str = Depends(get_current_user_id),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
) -> dict[str, Any]:
    """
    Pending transfers addressed to (incoming) and sent by (outgoing) the user.

    Expired transfers are left out even if they have not been rewritten yet.
    """
    try:
        incoming = workflow.pending_transfers_for(user_id)
        outgoing = workflow.pending_transfers_from(user_id)
        return {
            "success": True,
            "incoming": [t.to_dict() for t in incoming],
            "outgoing": [t.to_dict() for t in outgoing],
        }

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("transfer_list_failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/transfers", status_code=status.HTTP_201_CREATED)
def create_transfer(
    payload: TransferCreatePayload,
    user_id: str = Depends(get_current_user_id),
    client_key: str = Depends(get_client_address),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
) -> dict[str, Any]:
    """
    Propose moving a spot on a reservation to another user.

    Args:
        payload: Reservation, target user and optional slot holder
        user_id: Authenticated initiator (X-User-Id)
        client_key: Client address used for rate limiting
        workflow: Transfer workflow

    Returns:
        dict: success flag and the PENDING transfer
    """
    try:
        transfer = workflow.create(
            payload.reservation_id,
            user_id,
            payload.target_user_id,
            slot_user_id=payload.slot_user_id,
            client_key=client_key,
        )
        return {"success": True, "transfer": transfer.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception(
            "transfer_creation_failed", reservation_id=payload.reservation_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/transfers/{transfer_id}", status_code=status.HTTP_200_OK)
def get_transfer(
    transfer_id: str,
    user_id: str = Depends(get_current_user_id),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
) -> dict[str, Any]:
    """
    One transfer with its effective state; visible to initiator and target only.
    """
    try:
        transfer = workflow.get_transfer(transfer_id, user_id)
        return {"success": True, "transfer": transfer.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("transfer_fetch_failed", transfer_id=transfer_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.patch("/transfers/{transfer_id}", status_code=status.HTTP_200_OK)
def respond_to_transfer(
    transfer_id: str,
    payload: TransferRespondPayload,
    user_id: str = Depends(get_current_user_id),
    client_key: str = Depends(get_client_address),
    workflow: TransferWorkflow = Depends(get_transfer_workflow),
) -> dict[str, Any]:
    """
    Accept or decline a transfer as its recipient.
    """
    try:
        transfer = workflow.respond(transfer_id, user_id, payload.action, client_key=client_key)
        return {"success": True, "transfer": transfer.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("transfer_response_failed", transfer_id=transfer_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
