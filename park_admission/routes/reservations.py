from datetime import date
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from park_admission.dependencies import (
    get_admission_coordinator,
    get_client_address,
    get_current_user_id,
)
from park_admission.errors import AdmissionError
from park_admission.schemas.reservations import RemoveOccupantPayload, ReservationCreatePayload
from park_admission.services.admission import AdmissionCoordinator

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/reservations", status_code=status.HTTP_201_CREATED)
def create_reservation(
    payload: ReservationCreatePayload,
    user_id: str = Depends(get_current_user_id),
    client_key: str = Depends(get_client_address),
    coordinator: AdmissionCoordinator = Depends(get_admission_coordinator),
) -> dict[str, Any]:
    """
    Book a date for the authenticated user.

    Args:
        payload: Date and optional additional occupants
        user_id: Authenticated user (X-User-Id)
        client_key: Client address used for rate limiting
        coordinator: Admission coordinator

    Returns:
        dict: success flag and the created reservation with remaining spots
    """
    try:
        result = coordinator.admit_reservation(
            user_id,
            payload.date,
            client_key=client_key,
            additional_user_ids=payload.additional_user_ids,
        )
        return {"success": True, "reservation": result.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("reservation_creation_failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/reservations/{reservation_id}/cancel", status_code=status.HTTP_200_OK)
def cancel_reservation(
    reservation_id: str,
    user_id: str = Depends(get_current_user_id),
    client_key: str = Depends(get_client_address),
    coordinator: AdmissionCoordinator = Depends(get_admission_coordinator),
) -> dict[str, Any]:
    """
    Cancel a reservation (primary occupant) or leave it (any other occupant).
    """
    try:
        result = coordinator.cancel_reservation(reservation_id, user_id, client_key=client_key)
        return {"success": True, "cancellation": result.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception(
            "reservation_cancel_failed", reservation_id=reservation_id, error=str(e)
        )
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/reservations/{reservation_id}/remove-occupant", status_code=status.HTTP_200_OK)
def remove_occupant(
    reservation_id: str,
    payload: RemoveOccupantPayload,
    user_id: str = Depends(get_current_user_id),
    client_key: str = Depends(get_client_address),
    coordinator: AdmissionCoordinator = Depends(get_admission_coordinator),
) -> dict[str, Any]:
    """
    Remove an additional occupant. Only the primary occupant may call this.
    """
    try:
        result = coordinator.remove_occupant(
            reservation_id, user_id, payload.user_id, client_key=client_key
        )
        return {"success": True, "cancellation": result.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("occupant_removal_failed", reservation_id=reservation_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/reservations/availability", status_code=status.HTTP_200_OK)
def get_available_dates(
    start: date = Query(..., description="First date (inclusive)"),
    end: date = Query(..., description="Last date (inclusive)"),
    coordinator: AdmissionCoordinator = Depends(get_admission_coordinator),
) -> dict[str, Any]:
    """
    List dates in [start, end] that still have free spots.
    """
    try:
        snapshots = coordinator.available_dates(start, end)
        return {"success": True, "dates": [s.to_dict() for s in snapshots]}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("availability_query_failed", start=str(start), end=str(end), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/reservations/check-availability", status_code=status.HTTP_200_OK)
def check_availability(
    day: date = Query(..., alias="date", description="Date to check"),
    user_id: str = Depends(get_current_user_id),
    coordinator: AdmissionCoordinator = Depends(get_admission_coordinator),
) -> dict[str, Any]:
    """
    Whether the authenticated user could book a date right now.
    """
    try:
        availability = coordinator.check_availability(day, user_id=user_id)
        return {"success": True, **availability.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("availability_check_failed", date=str(day), error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/reservations/mine", status_code=status.HTTP_200_OK)
def my_reservation_dates(
    user_id: str = Depends(get_current_user_id),
    coordinator: AdmissionCoordinator = Depends(get_admission_coordinator),
) -> dict[str, Any]:
    """
    Upcoming reservation dates of the authenticated user and their longest run.
    """
    try:
        summary = coordinator.user_reservation_dates(user_id)
        return {"success": True, **summary.to_dict()}

    except AdmissionError:
        raise
    except Exception as e:
        logger.exception("reservation_dates_failed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error")
