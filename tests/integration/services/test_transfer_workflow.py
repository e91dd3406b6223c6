"""
Integration tests for TransferWorkflow against SQLite.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import select, update
from sqlalchemy.engine import Engine

from park_admission.errors import (
    AdmissionError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransferExpired,
    ValidationError,
)
from park_admission.models.reservations import Reservation, ReservationOccupant
from park_admission.models.transfers import TransferRequest, TransferState
from park_admission.services.admission import AdmissionCoordinator
from park_admission.services.transfers import TransferWorkflow


@pytest.fixture
def reservation_id(coordinator: AdmissionCoordinator, jan) -> str:
    """alice (primary) and bob hold a reservation on Jan 24."""
    return coordinator.admit_reservation("alice", jan(24), additional_user_ids=["bob"]).reservation_id


def occupants(engine: Engine, reservation_id: str) -> dict[str, tuple[str, bool]]:
    with engine.connect() as conn:
        rows = conn.execute(
            select(
                ReservationOccupant.user_id,
                ReservationOccupant.status,
                ReservationOccupant.is_primary,
            ).where(ReservationOccupant.reservation_id == reservation_id)
        ).fetchall()
    return {r.user_id: (r.status, r.is_primary) for r in rows}


def stored_state(engine: Engine, transfer_id: str) -> str:
    with engine.connect() as conn:
        return conn.execute(
            select(TransferRequest.state).where(TransferRequest.id == transfer_id)
        ).scalar_one()


# =============================================================================
# create
# =============================================================================


@pytest.mark.integration
def test_create_makes_pending_transfer_with_deadline(
    workflow: TransferWorkflow, reservation_id: str, clock, published_events, jan
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")

    assert transfer.state is TransferState.PENDING
    assert transfer.slot_user_id == "alice"
    assert transfer.reservation_date == jan(24)
    assert transfer.expires_at == clock.now + workflow.ttl
    assert [e.to_dict() for e in published_events] == [
        {
            "type": "transfer.created",
            "transferId": transfer.id,
            "reservationId": reservation_id,
            "initiatorId": "alice",
            "targetUserId": "carol",
        }
    ]


@pytest.mark.integration
def test_create_rejects_duplicate_pending_transfer(
    workflow: TransferWorkflow, reservation_id: str
) -> None:
    workflow.create(reservation_id, "alice", "carol")

    with pytest.raises(ConflictError):
        workflow.create(reservation_id, "bob", "carol")


@pytest.mark.integration
@pytest.mark.parametrize(
    "initiator, target, slot, error",
    [
        ("alice", "alice", None, ValidationError),
        ("mallory", "carol", None, AuthorizationError),
        ("bob", "carol", "alice", AuthorizationError),
        ("alice", "carol", "zed", ValidationError),
        ("alice", "bob", None, ConflictError),
    ],
)
def test_create_rules(
    workflow: TransferWorkflow,
    reservation_id: str,
    initiator: str,
    target: str,
    slot: str | None,
    error: type[AdmissionError],
) -> None:
    with pytest.raises(error):
        workflow.create(reservation_id, initiator, target, slot_user_id=slot)


@pytest.mark.integration
def test_create_on_unknown_reservation(workflow: TransferWorkflow) -> None:
    with pytest.raises(NotFoundError):
        workflow.create("missing", "alice", "carol")


@pytest.mark.integration
def test_create_on_cancelled_reservation(
    workflow: TransferWorkflow, coordinator: AdmissionCoordinator, reservation_id: str
) -> None:
    coordinator.cancel_reservation(reservation_id, "alice")

    with pytest.raises(ValidationError):
        workflow.create(reservation_id, "alice", "carol")


@pytest.mark.integration
def test_create_on_non_transferable_reservation(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str
) -> None:
    with db_engine.begin() as conn:
        conn.execute(
            update(Reservation).where(Reservation.id == reservation_id).values(can_transfer=False)
        )

    with pytest.raises(ValidationError):
        workflow.create(reservation_id, "alice", "carol")


@pytest.mark.integration
def test_create_checks_target_consecutive_days(
    workflow: TransferWorkflow, coordinator: AdmissionCoordinator, reservation_id: str, jan
) -> None:
    for day in (21, 22, 23):
        coordinator.admit_reservation("carol", jan(day))

    with pytest.raises(ValidationError):
        workflow.create(reservation_id, "alice", "carol")


@pytest.mark.integration
def test_create_rejects_target_with_spot_that_day(
    workflow: TransferWorkflow, coordinator: AdmissionCoordinator, reservation_id: str, jan
) -> None:
    coordinator.admit_reservation("carol", jan(24))

    with pytest.raises(ConflictError):
        workflow.create(reservation_id, "alice", "carol")


@pytest.mark.integration
def test_create_after_expiry_rewrites_stale_row(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str, clock, published_events
) -> None:
    stale = workflow.create(reservation_id, "alice", "carol")
    clock.advance(hours=25)

    fresh = workflow.create(reservation_id, "alice", "carol")

    assert stored_state(db_engine, stale.id) == "EXPIRED"
    assert stored_state(db_engine, fresh.id) == "PENDING"
    assert [e.type for e in published_events] == [
        "transfer.created",
        "transfer.expired",
        "transfer.created",
    ]


# =============================================================================
# respond
# =============================================================================


@pytest.mark.integration
def test_accept_moves_primary_slot(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str, published_events
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")

    result = workflow.respond(transfer.id, "carol", "accept")

    assert result.state is TransferState.ACCEPTED
    assert result.decided_at is not None
    assert occupants(db_engine, reservation_id) == {
        "alice": ("CANCELLED", True),
        "bob": ("ACTIVE", False),
        "carol": ("ACTIVE", True),
    }
    with db_engine.connect() as conn:
        primary = conn.execute(
            select(Reservation.primary_user_id).where(Reservation.id == reservation_id)
        ).scalar_one()
    assert primary == "carol"
    assert published_events[-1].type == "transfer.accepted"


@pytest.mark.integration
def test_accept_moves_additional_slot(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str
) -> None:
    transfer = workflow.create(reservation_id, "alice", "dave", slot_user_id="bob")

    workflow.respond(transfer.id, "dave", "accept")

    assert occupants(db_engine, reservation_id) == {
        "alice": ("ACTIVE", True),
        "bob": ("CANCELLED", False),
        "dave": ("ACTIVE", False),
    }


@pytest.mark.integration
def test_accept_does_not_touch_capacity(
    workflow: TransferWorkflow, coordinator: AdmissionCoordinator, reservation_id: str, jan
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    workflow.respond(transfer.id, "carol", "accept")

    assert coordinator.ledger.snapshot(jan(24)).total_bookings == 1


@pytest.mark.integration
def test_transfer_back_reactivates_cancelled_occupant(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str
) -> None:
    first = workflow.create(reservation_id, "bob", "dave")
    workflow.respond(first.id, "dave", "accept")

    second = workflow.create(reservation_id, "dave", "bob")
    workflow.respond(second.id, "bob", "accept")

    assert occupants(db_engine, reservation_id)["bob"] == ("ACTIVE", False)
    assert occupants(db_engine, reservation_id)["dave"] == ("CANCELLED", False)


@pytest.mark.integration
def test_decline_leaves_reservation_unchanged(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str, published_events
) -> None:
    before = occupants(db_engine, reservation_id)
    transfer = workflow.create(reservation_id, "alice", "carol")

    result = workflow.respond(transfer.id, "carol", "decline")

    assert result.state is TransferState.DECLINED
    assert occupants(db_engine, reservation_id) == before
    assert published_events[-1].type == "transfer.declined"


@pytest.mark.integration
def test_accept_after_deadline_expires_pending_row(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str, clock, published_events
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    before = occupants(db_engine, reservation_id)
    clock.advance(hours=24, seconds=1)

    with pytest.raises(TransferExpired):
        workflow.respond(transfer.id, "carol", "accept")

    assert stored_state(db_engine, transfer.id) == "EXPIRED"
    assert occupants(db_engine, reservation_id) == before
    assert published_events[-1].type == "transfer.expired"


@pytest.mark.integration
def test_respond_exactly_at_deadline_is_expired(
    workflow: TransferWorkflow, reservation_id: str, clock
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    clock.advance(hours=24)

    with pytest.raises(TransferExpired):
        workflow.respond(transfer.id, "carol", "decline")


@pytest.mark.integration
def test_expiry_check_runs_before_authorization(
    workflow: TransferWorkflow, reservation_id: str, clock
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    clock.advance(days=2)

    with pytest.raises(TransferExpired):
        workflow.respond(transfer.id, "mallory", "accept")


@pytest.mark.integration
def test_only_target_can_respond(workflow: TransferWorkflow, reservation_id: str) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")

    with pytest.raises(AuthorizationError):
        workflow.respond(transfer.id, "alice", "accept")


@pytest.mark.integration
def test_second_response_conflicts(workflow: TransferWorkflow, reservation_id: str) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    workflow.respond(transfer.id, "carol", "decline")

    with pytest.raises(ConflictError):
        workflow.respond(transfer.id, "carol", "accept")


@pytest.mark.integration
def test_unknown_transfer_and_bad_action(workflow: TransferWorkflow, reservation_id: str) -> None:
    with pytest.raises(NotFoundError):
        workflow.respond("missing", "carol", "accept")

    transfer = workflow.create(reservation_id, "alice", "carol")
    with pytest.raises(ValidationError):
        workflow.respond(transfer.id, "carol", "maybe")


@pytest.mark.integration
def test_accept_rechecks_target_consecutive_days(
    workflow: TransferWorkflow,
    coordinator: AdmissionCoordinator,
    db_engine: Engine,
    reservation_id: str,
    jan,
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    for day in (21, 22, 23):
        coordinator.admit_reservation("carol", jan(day))
    before = occupants(db_engine, reservation_id)

    with pytest.raises(ValidationError):
        workflow.respond(transfer.id, "carol", "accept")

    assert stored_state(db_engine, transfer.id) == "PENDING"
    assert occupants(db_engine, reservation_id) == before


@pytest.mark.integration
def test_accept_on_cancelled_reservation_rolls_back(
    workflow: TransferWorkflow,
    coordinator: AdmissionCoordinator,
    db_engine: Engine,
    reservation_id: str,
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    coordinator.cancel_reservation(reservation_id, "alice")

    with pytest.raises(ValidationError):
        workflow.respond(transfer.id, "carol", "accept")

    assert stored_state(db_engine, transfer.id) == "PENDING"


@pytest.mark.integration
def test_concurrent_responses_exactly_one_wins(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    barrier = threading.Barrier(4)

    def respond(action: str) -> str:
        barrier.wait()
        try:
            workflow.respond(transfer.id, "carol", action)
            return "ok"
        except (ConflictError, TransferExpired):
            return "lost"

    with ThreadPoolExecutor(max_workers=4) as pool:
        outcomes = list(pool.map(respond, ["accept", "accept", "decline", "accept"]))

    assert outcomes.count("ok") == 1
    assert outcomes.count("lost") == 3

    active = [user for user, (status, _) in occupants(db_engine, reservation_id).items()
              if status == "ACTIVE"]
    if stored_state(db_engine, transfer.id) == "ACCEPTED":
        assert sorted(active) == ["bob", "carol"]
    else:
        assert sorted(active) == ["alice", "bob"]


# =============================================================================
# queries
# =============================================================================


@pytest.mark.integration
def test_pending_lists_exclude_expired_without_rewriting(
    workflow: TransferWorkflow, db_engine: Engine, reservation_id: str, clock
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")
    assert [t.id for t in workflow.pending_transfers_for("carol")] == [transfer.id]

    clock.advance(hours=25)

    assert workflow.pending_transfers_for("carol") == []
    assert workflow.pending_transfers_from("alice") == []
    assert stored_state(db_engine, transfer.id) == "PENDING"


@pytest.mark.integration
def test_pending_transfers_from_newest_first(
    workflow: TransferWorkflow, reservation_id: str, clock
) -> None:
    older = workflow.create(reservation_id, "alice", "carol")
    clock.advance(minutes=5)
    newer = workflow.create(reservation_id, "alice", "dave", slot_user_id="bob")

    assert [t.id for t in workflow.pending_transfers_from("alice")] == [newer.id, older.id]
    assert [t.id for t in workflow.pending_transfers_for("dave")] == [newer.id]


@pytest.mark.integration
def test_get_transfer_visibility_and_effective_state(
    workflow: TransferWorkflow, reservation_id: str, clock
) -> None:
    transfer = workflow.create(reservation_id, "alice", "carol")

    assert workflow.get_transfer(transfer.id, "alice").state is TransferState.PENDING
    assert workflow.get_transfer(transfer.id, "carol").id == transfer.id
    with pytest.raises(AuthorizationError):
        workflow.get_transfer(transfer.id, "bob")
    with pytest.raises(NotFoundError):
        workflow.get_transfer("missing", "alice")

    clock.advance(hours=24)
    assert workflow.get_transfer(transfer.id, "carol").state is TransferState.EXPIRED
