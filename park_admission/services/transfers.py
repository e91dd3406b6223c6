"""
Transfer workflow for moving an occupant slot to another user.

State machine (ACCEPTED, DECLINED and EXPIRED are terminal):

    PENDING --accept by target before expires_at--> ACCEPTED
    PENDING --decline by target before expires_at--> DECLINED
    PENDING --any access at or after expires_at--> EXPIRED

Expiry is lazy. Nothing sweeps old rows; every read computes the effective
state from expires_at, and a stale PENDING row is rewritten as EXPIRED only
when a respond or create touches it.

Accepting cancels the slot holder's occupant row, activates the target's row
and closes the transfer in one transaction. The PENDING -> ACCEPTED
compare-and-swap runs first, so of two concurrent responses exactly one
proceeds and the other gets ConflictError.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional, Union

import structlog
from sqlalchemy.engine import Connection, Engine

from park_admission.config import MAX_CONSECUTIVE_DAYS, TRANSFER_TTL_HOURS
from park_admission.db.locks import lock_users
from park_admission.db.readers.reservations import (
    get_active_dates_for_user,
    get_active_occupants,
    get_reservation,
)
from park_admission.db.readers.transfers import (
    find_open_transfer,
    get_transfer,
    list_open_transfers,
    list_stale_transfers,
)
from park_admission.db.transaction import storage_connection, storage_transaction
from park_admission.db.writers.reservations import (
    activate_occupant,
    cancel_occupant,
    set_primary_user,
)
from park_admission.db.writers.transfers import insert_transfer, transition_transfer
from park_admission.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransferExpired,
    ValidationError,
)
from park_admission.metrics import transfers_total
from park_admission.models.reservations import ReservationStatus
from park_admission.models.transfers import TransferState
from park_admission.services import notifications
from park_admission.services.consecutive_days import guard_window, would_exceed
from park_admission.services.notifications import TransferEvent, TransferNotifier
from park_admission.services.rate_limiter import (
    TRANSFER_CREATE,
    TRANSFER_RESPOND,
    RateLimiter,
    get_limiter,
)
from park_admission.utils.datetime import ensure_utc, utc_now

logger = structlog.get_logger(__name__)


class TransferAction(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


def effective_state(transfer: Any, now: datetime) -> TransferState:
    """
    State a transfer is in right now.

    A stored PENDING is never trusted on its own: at or after expires_at the
    transfer is EXPIRED whether or not the row has been rewritten.

    Args:
        transfer: Anything with state and expires_at attributes
        now: Current time (timezone-aware)
    """
    state = TransferState(transfer.state)
    if state is TransferState.PENDING and now >= ensure_utc(transfer.expires_at):
        return TransferState.EXPIRED
    return state


@dataclass(frozen=True)
class TransferView:
    id: str
    reservation_id: str
    reservation_date: date
    initiator_id: str
    target_user_id: str
    slot_user_id: str
    state: TransferState
    created_at: datetime
    decided_at: Optional[datetime]
    expires_at: datetime

    @classmethod
    def from_row(cls, row: Any, now: datetime) -> "TransferView":
        return cls(
            id=row.id,
            reservation_id=row.reservation_id,
            reservation_date=row.reservation_date,
            initiator_id=row.initiator_id,
            target_user_id=row.target_user_id,
            slot_user_id=row.slot_user_id,
            state=effective_state(row, now),
            created_at=ensure_utc(row.created_at),
            decided_at=ensure_utc(row.decided_at) if row.decided_at else None,
            expires_at=ensure_utc(row.expires_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "reservation_id": self.reservation_id,
            "reservation_date": self.reservation_date.isoformat(),
            "initiator_id": self.initiator_id,
            "target_user_id": self.target_user_id,
            "slot_user_id": self.slot_user_id,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "expires_at": self.expires_at.isoformat(),
        }


class TransferWorkflow:
    """
    Create, answer and list transfer requests.

    Args:
        engine: SQLAlchemy engine
        notifier: Receives one TransferEvent per committed state change
        create_limiter: Budget for create(); defaults to the shared "transfer:create" limiter
        respond_limiter: Budget for respond(); defaults to the shared "transfer:respond" limiter
        max_consecutive_days: Consecutive-day limit applied to the target user
        ttl: Time a transfer stays actionable after creation
        clock: Returns the current timezone-aware UTC time
    """

    def __init__(
        self,
        engine: Engine,
        notifier: Optional[TransferNotifier] = None,
        create_limiter: Optional[RateLimiter] = None,
        respond_limiter: Optional[RateLimiter] = None,
        max_consecutive_days: int = MAX_CONSECUTIVE_DAYS,
        ttl: timedelta = timedelta(hours=TRANSFER_TTL_HOURS),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.notifier = notifier or notifications.transfer_notifier
        self.create_limiter = create_limiter or get_limiter(TRANSFER_CREATE)
        self.respond_limiter = respond_limiter or get_limiter(TRANSFER_RESPOND)
        self.max_consecutive_days = max_consecutive_days
        self.ttl = ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(
        self,
        reservation_id: str,
        initiator_id: str,
        target_user_id: str,
        slot_user_id: Optional[str] = None,
        client_key: str = "unknown",
    ) -> TransferView:
        """
        Propose moving an occupant slot to target_user_id.

        Args:
            reservation_id: Reservation holding the slot
            initiator_id: User asking for the transfer; must be an active occupant
            target_user_id: User who will receive the slot
            slot_user_id: Occupant whose slot moves (defaults to the initiator);
                only the primary user may transfer someone else's slot
            client_key: Rate-limit key of the calling client

        Returns:
            TransferView of the new PENDING transfer

        Raises:
            RateLimitExceeded, NotFoundError, AuthorizationError, ValidationError,
            ConflictError, StorageUnavailable
        """
        self.create_limiter.check_and_consume(client_key)

        slot_user_id = slot_user_id or initiator_id
        if target_user_id == initiator_id:
            raise ValidationError("You cannot transfer a spot to yourself")

        now = self._clock()
        transfer_id = str(uuid.uuid4())
        expired_rows: list[Any] = []

        with storage_transaction(
            self.engine,
            "transfer_create",
            conflict_message="A pending transfer to this user already exists for this reservation",
            reservation_id=reservation_id,
            transfer_id=transfer_id,
        ) as conn:
            for stale in list_stale_transfers(conn, reservation_id, target_user_id, now):
                if transition_transfer(
                    conn, stale.id, TransferState.PENDING, TransferState.EXPIRED, now
                ):
                    expired_rows.append(stale)

            reservation = get_reservation(conn, reservation_id)
            if reservation is None:
                raise NotFoundError("Reservation not found", reservation_id=reservation_id)
            if reservation.status != ReservationStatus.ACTIVE.value:
                raise ValidationError(
                    "Cannot transfer a spot on a cancelled reservation",
                    reservation_id=reservation_id,
                )
            if not reservation.can_transfer:
                raise ValidationError(
                    "This reservation does not allow transfers", reservation_id=reservation_id
                )

            occupants = {o.user_id: o for o in get_active_occupants(conn, reservation_id)}
            initiator = occupants.get(initiator_id)
            if initiator is None:
                raise AuthorizationError(
                    "You are not an occupant of this reservation", reservation_id=reservation_id
                )
            if slot_user_id != initiator_id and not initiator.is_primary:
                raise AuthorizationError(
                    "Only the primary occupant can transfer another occupant's spot",
                    reservation_id=reservation_id,
                )
            if slot_user_id not in occupants:
                raise ValidationError(
                    "The spot being transferred is not held by an active occupant",
                    reservation_id=reservation_id,
                )
            if target_user_id in occupants:
                raise ConflictError(
                    "This user is already on the reservation", reservation_id=reservation_id
                )
            if find_open_transfer(conn, reservation_id, target_user_id, now) is not None:
                raise ConflictError(
                    "A pending transfer to this user already exists for this reservation",
                    reservation_id=reservation_id,
                )

            self._check_target_dates(conn, target_user_id, reservation.reservation_date)

            insert_transfer(
                conn,
                transfer_id=transfer_id,
                reservation_id=reservation_id,
                initiator_id=initiator_id,
                target_user_id=target_user_id,
                slot_user_id=slot_user_id,
                now=now,
                expires_at=now + self.ttl,
            )
            row = get_transfer(conn, transfer_id)

        for stale in expired_rows:
            self._record(TransferState.EXPIRED, stale)

        view = TransferView.from_row(row, now)
        self._record(TransferState.PENDING, row)
        return view

    # ------------------------------------------------------------------
    # respond
    # ------------------------------------------------------------------

    def respond(
        self,
        transfer_id: str,
        acting_user_id: str,
        action: Union[TransferAction, str],
        client_key: str = "unknown",
    ) -> TransferView:
        """
        Accept or decline a transfer as its target user.

        The deadline is checked before anything else: at or after expires_at
        the call fails with TransferExpired whatever the stored state says, and
        a row still stored as PENDING is rewritten as EXPIRED.

        Raises:
            RateLimitExceeded, ValidationError, NotFoundError, TransferExpired,
            AuthorizationError, ConflictError, StorageUnavailable
        """
        self.respond_limiter.check_and_consume(client_key)

        try:
            action = TransferAction(action)
        except ValueError:
            raise ValidationError("Action must be 'accept' or 'decline'")

        now = self._clock()
        expired_row = None
        expired = False

        with storage_transaction(
            self.engine, "transfer_respond", transfer_id=transfer_id, action=action.value
        ) as conn:
            row = get_transfer(conn, transfer_id)
            if row is None:
                raise NotFoundError("Transfer not found", transfer_id=transfer_id)

            if now >= ensure_utc(row.expires_at):
                # Commit the EXPIRED rewrite, then fail outside the transaction
                expired = True
                if row.state == TransferState.PENDING.value and transition_transfer(
                    conn, transfer_id, TransferState.PENDING, TransferState.EXPIRED, now
                ):
                    expired_row = row
            else:
                if acting_user_id != row.target_user_id:
                    raise AuthorizationError(
                        "Only the recipient can respond to this transfer", transfer_id=transfer_id
                    )
                if row.state != TransferState.PENDING.value:
                    raise ConflictError(
                        f"This transfer has already been {row.state.lower()}",
                        transfer_id=transfer_id,
                    )

                if action is TransferAction.ACCEPT:
                    self._accept(conn, row, now)
                elif not transition_transfer(
                    conn,
                    transfer_id,
                    TransferState.PENDING,
                    TransferState.DECLINED,
                    now,
                    unexpired_at=now,
                ):
                    raise ConflictError(
                        "This transfer has already been processed", transfer_id=transfer_id
                    )
                row = get_transfer(conn, transfer_id)

        if expired:
            if expired_row is not None:
                self._record(TransferState.EXPIRED, expired_row)
            logger.info("transfer_respond_expired", transfer_id=transfer_id)
            raise TransferExpired(transfer_id=transfer_id)

        self._record(TransferState(row.state), row)
        return TransferView.from_row(row, now)

    def _accept(self, conn: Connection, row: Any, now: datetime) -> None:
        if not transition_transfer(
            conn, row.id, TransferState.PENDING, TransferState.ACCEPTED, now, unexpired_at=now
        ):
            raise ConflictError("This transfer has already been processed", transfer_id=row.id)

        reservation = get_reservation(conn, row.reservation_id)
        if reservation is None or reservation.status != ReservationStatus.ACTIVE.value:
            raise ValidationError(
                "The reservation is no longer active", transfer_id=row.id
            )

        occupants = {o.user_id: o for o in get_active_occupants(conn, row.reservation_id)}
        if row.target_user_id in occupants:
            raise ConflictError("You are already on this reservation", transfer_id=row.id)
        slot = occupants.get(row.slot_user_id)
        if slot is None:
            raise ConflictError("The transferred spot is no longer held", transfer_id=row.id)

        self._check_target_dates(conn, row.target_user_id, reservation.reservation_date)

        if not cancel_occupant(conn, row.reservation_id, row.slot_user_id, now):
            raise ConflictError("The transferred spot is no longer held", transfer_id=row.id)
        activate_occupant(conn, row.reservation_id, row.target_user_id, slot.is_primary, now)
        if slot.is_primary:
            set_primary_user(conn, row.reservation_id, row.target_user_id, now)

    def _check_target_dates(self, conn: Connection, user_id: str, day: date) -> None:
        lock_users(conn, [user_id])
        start, end = guard_window(day, self.max_consecutive_days)
        existing = get_active_dates_for_user(conn, user_id, start, end)
        if day in existing:
            raise ConflictError("This user already has a reservation on this date")
        if would_exceed(existing, day, self.max_consecutive_days):
            raise ValidationError(
                f"This user cannot book more than {self.max_consecutive_days} consecutive days"
            )

    def _record(self, state: TransferState, row: Any) -> None:
        event_type, metric_event = {
            TransferState.PENDING: (notifications.TRANSFER_CREATED, "created"),
            TransferState.ACCEPTED: (notifications.TRANSFER_ACCEPTED, "accepted"),
            TransferState.DECLINED: (notifications.TRANSFER_DECLINED, "declined"),
            TransferState.EXPIRED: (notifications.TRANSFER_EXPIRED, "expired"),
        }[state]

        transfers_total.labels(event=metric_event).inc()
        logger.info(
            f"transfer_{metric_event}",
            transfer_id=row.id,
            reservation_id=row.reservation_id,
            initiator_id=row.initiator_id,
            target_user_id=row.target_user_id,
            slot_user_id=row.slot_user_id,
        )
        self.notifier.publish(
            TransferEvent(
                type=event_type,
                transfer_id=row.id,
                reservation_id=row.reservation_id,
                initiator_id=row.initiator_id,
                target_user_id=row.target_user_id,
            )
        )

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def pending_transfers_for(self, user_id: str) -> list[TransferView]:
        """Actionable transfers addressed to user_id, newest first."""
        now = self._clock()
        with storage_connection(self.engine, "transfer_list", user_id=user_id) as conn:
            rows = list_open_transfers(conn, now, target_user_id=user_id)
        return [TransferView.from_row(r, now) for r in rows]

    def pending_transfers_from(self, user_id: str) -> list[TransferView]:
        """Actionable transfers user_id has sent, newest first."""
        now = self._clock()
        with storage_connection(self.engine, "transfer_list", user_id=user_id) as conn:
            rows = list_open_transfers(conn, now, initiator_id=user_id)
        return [TransferView.from_row(r, now) for r in rows]

    def get_transfer(self, transfer_id: str, user_id: str) -> TransferView:
        """
        One transfer with its effective state.

        Raises:
            NotFoundError: unknown transfer
            AuthorizationError: user_id is neither initiator nor target
        """
        now = self._clock()
        with storage_connection(self.engine, "transfer_get", transfer_id=transfer_id) as conn:
            row = get_transfer(conn, transfer_id)

        if row is None:
            raise NotFoundError("Transfer not found", transfer_id=transfer_id)
        if user_id not in (row.initiator_id, row.target_user_id):
            raise AuthorizationError("Not authorized to view this transfer", transfer_id=transfer_id)
        return TransferView.from_row(row, now)
