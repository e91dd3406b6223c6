"""
Reservation admission and cancellation.

AdmissionCoordinator answers "can this reservation be created or changed now?".
For a new booking it runs, in order:

1. the "reservation:create" rate limit for the client address
2. input checks (past date, additional occupants)
3. the consecutive-day rule for every occupant
4. CapacityLedger.try_admit for the date
5. the reservation and occupant inserts

Steps 3-5 share one transaction. The consecutive-day rule is side-effect free
and runs before the capacity update, so a rejected booking never takes a slot.
Any failure rolls the whole transaction back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, Union

import structlog
from sqlalchemy.engine import Connection, Engine

from park_admission.config import (
    AVAILABILITY_MAX_RANGE_DAYS,
    MAX_ADDITIONAL_OCCUPANTS,
    MAX_CONSECUTIVE_DAYS,
)
from park_admission.db.locks import lock_users
from park_admission.db.readers.reservations import (
    get_active_dates_for_user,
    get_active_occupants,
    get_reservation,
    users_with_reservation_on,
)
from park_admission.db.transaction import storage_connection, storage_transaction
from park_admission.db.writers.reservations import (
    cancel_all_occupants,
    cancel_occupant,
    insert_reservation,
    mark_reservation_cancelled,
)
from park_admission.errors import (
    AdmissionError,
    AuthorizationError,
    ConflictError,
    ErrorKind,
    NotFoundError,
    ValidationError,
)
from park_admission.metrics import admissions_total, cancellations_total
from park_admission.models.reservations import ReservationStatus
from park_admission.services.capacity import CapacityLedger, CapacitySnapshot
from park_admission.services.consecutive_days import (
    guard_window,
    longest_consecutive_run,
    would_exceed,
)
from park_admission.services.rate_limiter import (
    RESERVATION_CANCEL,
    RESERVATION_CREATE,
    RateLimiter,
    get_limiter,
)
from park_admission.utils.datetime import to_calendar_day, utc_now

logger = structlog.get_logger(__name__)

CONSECUTIVE_DAY_LIMIT = "consecutive_day_limit"

_OUTCOMES = {
    ErrorKind.VALIDATION: "invalid",
    ErrorKind.CAPACITY_EXCEEDED: "capacity_exceeded",
    ErrorKind.CONFLICT: "conflict",
    ErrorKind.RATE_LIMIT_EXCEEDED: "rate_limited",
    ErrorKind.STORAGE_UNAVAILABLE: "storage_error",
}


@dataclass(frozen=True)
class AdmissionResult:
    reservation_id: str
    date: date
    primary_user_id: str
    additional_user_ids: tuple[str, ...]
    remaining_spots: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "date": self.date.isoformat(),
            "primary_user_id": self.primary_user_id,
            "additional_user_ids": list(self.additional_user_ids),
            "remaining_spots": self.remaining_spots,
        }


@dataclass(frozen=True)
class CancellationResult:
    reservation_id: str
    user_id: str
    scope: str  # "reservation" or "occupant"
    capacity_released: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "user_id": self.user_id,
            "scope": self.scope,
            "capacity_released": self.capacity_released,
        }


@dataclass(frozen=True)
class Availability:
    date: date
    is_available: bool
    remaining_spots: int
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "is_available": self.is_available,
            "remaining_spots": self.remaining_spots,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class UserReservationDates:
    user_id: str
    dates: list[date] = field(default_factory=list)

    @property
    def longest_consecutive_run(self) -> int:
        return longest_consecutive_run(self.dates)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "dates": [d.isoformat() for d in self.dates],
            "longest_consecutive_run": self.longest_consecutive_run,
        }


class AdmissionCoordinator:
    """
    Composes rate limiting, the consecutive-day rule and the capacity ledger.

    Args:
        engine: SQLAlchemy engine
        ledger: Capacity ledger (defaults to one on the same engine)
        limiter: Budget for admissions; defaults to the shared "reservation:create" limiter
        cancel_limiter: Budget for cancellations; defaults to "reservation:cancel"
        max_consecutive_days: Longest allowed run of booked days per user
        max_additional_occupants: Extra occupants allowed on one reservation
        availability_max_range_days: Longest range accepted by available_dates
        clock: Returns the current timezone-aware UTC time
    """

    def __init__(
        self,
        engine: Engine,
        ledger: Optional[CapacityLedger] = None,
        limiter: Optional[RateLimiter] = None,
        cancel_limiter: Optional[RateLimiter] = None,
        max_consecutive_days: int = MAX_CONSECUTIVE_DAYS,
        max_additional_occupants: int = MAX_ADDITIONAL_OCCUPANTS,
        availability_max_range_days: int = AVAILABILITY_MAX_RANGE_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.ledger = ledger or CapacityLedger(engine, clock=clock)
        self.limiter = limiter or get_limiter(RESERVATION_CREATE)
        self.cancel_limiter = cancel_limiter or get_limiter(RESERVATION_CANCEL)
        self.max_consecutive_days = max_consecutive_days
        self.max_additional_occupants = max_additional_occupants
        self.availability_max_range_days = availability_max_range_days
        self._clock = clock

    def _today(self) -> date:
        return self._clock().date()

    # ------------------------------------------------------------------
    # admission
    # ------------------------------------------------------------------

    def admit_reservation(
        self,
        user_id: str,
        day: Union[date, datetime],
        client_key: str = "unknown",
        additional_user_ids: Iterable[str] = (),
    ) -> AdmissionResult:
        """
        Create a reservation for user_id on day if every rule allows it.

        Args:
            user_id: Primary (owning) user
            day: Requested date; datetimes are reduced to their UTC calendar day
            client_key: Rate-limit key of the calling client
            additional_user_ids: Extra occupants; each takes part in the
                consecutive-day rule but the booking uses one capacity slot

        Raises:
            RateLimitExceeded: client budget exhausted
            ValidationError: past date, bad occupant list or consecutive-day limit
            ConflictError: the user or an additional occupant already has a spot that day
            CapacityExceeded: the date is fully booked
            StorageUnavailable: the database failed
        """
        day = to_calendar_day(day)
        try:
            result = self._admit(user_id, day, client_key, additional_user_ids)
        except AdmissionError as e:
            outcome = e.context.get("reason") or _OUTCOMES.get(e.kind, "invalid")
            admissions_total.labels(outcome=outcome).inc()
            logger.info(
                "reservation_rejected",
                user_id=user_id,
                date=str(day),
                outcome=outcome,
                error=e.message,
            )
            raise

        admissions_total.labels(outcome="admitted").inc()
        logger.info(
            "reservation_admitted",
            reservation_id=result.reservation_id,
            user_id=user_id,
            date=str(day),
            additional_occupants=len(result.additional_user_ids),
            remaining_spots=result.remaining_spots,
        )
        return result

    def _admit(
        self,
        user_id: str,
        day: date,
        client_key: str,
        additional_user_ids: Iterable[str],
    ) -> AdmissionResult:
        self.limiter.check_and_consume(client_key)

        if day < self._today():
            raise ValidationError("Cannot book a date in the past")

        additional = list(dict.fromkeys(additional_user_ids))
        if user_id in additional:
            raise ValidationError("The primary occupant cannot also be an additional occupant")
        if len(additional) > self.max_additional_occupants:
            raise ValidationError(
                f"A reservation can have at most {self.max_additional_occupants} additional occupants"
            )

        reservation_id = str(uuid.uuid4())
        with storage_transaction(
            self.engine, "admit", reservation_id=reservation_id, user_id=user_id, date=str(day)
        ) as conn:
            lock_users(conn, [user_id, *additional])
            taken = users_with_reservation_on(conn, [user_id, *additional], day)
            if user_id in taken:
                raise ConflictError("You already have a reservation on this date", user_ids=taken)
            if taken:
                raise ConflictError(
                    f"User {taken[0]} already has a reservation on this date", user_ids=taken
                )

            self._check_consecutive(conn, user_id, day, "You")
            for other in additional:
                self._check_consecutive(conn, other, day, f"User {other}")

            remaining = self.ledger.try_admit(day, conn=conn)
            insert_reservation(conn, reservation_id, day, user_id, additional, self._clock())

        return AdmissionResult(
            reservation_id=reservation_id,
            date=day,
            primary_user_id=user_id,
            additional_user_ids=tuple(additional),
            remaining_spots=remaining,
        )

    def _check_consecutive(self, conn: Connection, user_id: str, day: date, who: str) -> None:
        start, end = guard_window(day, self.max_consecutive_days)
        existing = get_active_dates_for_user(conn, user_id, start, end)
        if would_exceed(existing, day, self.max_consecutive_days):
            raise ValidationError(
                f"{who} cannot book more than {self.max_consecutive_days} consecutive days",
                reason=CONSECUTIVE_DAY_LIMIT,
                user_id=user_id,
            )

    # ------------------------------------------------------------------
    # cancellation
    # ------------------------------------------------------------------

    def cancel_reservation(
        self, reservation_id: str, user_id: str, client_key: str = "unknown"
    ) -> CancellationResult:
        """
        Cancel as user_id.

        The primary occupant cancels the whole reservation and its capacity slot
        is released once. Any other occupant only leaves the reservation.

        Raises:
            RateLimitExceeded, NotFoundError, AuthorizationError,
            ValidationError (already cancelled), StorageUnavailable
        """
        self.cancel_limiter.check_and_consume(client_key)
        now = self._clock()

        with storage_transaction(
            self.engine, "cancel", reservation_id=reservation_id, user_id=user_id
        ) as conn:
            reservation = self._load_active(conn, reservation_id)
            occupants = {o.user_id: o for o in get_active_occupants(conn, reservation_id)}
            occupant = occupants.get(user_id)
            if occupant is None:
                raise AuthorizationError(
                    "You are not an occupant of this reservation", reservation_id=reservation_id
                )

            if occupant.is_primary:
                if not mark_reservation_cancelled(conn, reservation_id, now):
                    raise ValidationError(
                        "Reservation is already cancelled", reservation_id=reservation_id
                    )
                cancel_all_occupants(conn, reservation_id, now)
                released = self.ledger.release(reservation.reservation_date, conn=conn)
                scope = "reservation"
            else:
                if not cancel_occupant(conn, reservation_id, user_id, now):
                    raise ValidationError(
                        "Your spot is already cancelled", reservation_id=reservation_id
                    )
                released = False
                scope = "occupant"

        cancellations_total.labels(scope=scope).inc()
        logger.info(
            "reservation_cancelled",
            reservation_id=reservation_id,
            user_id=user_id,
            scope=scope,
            capacity_released=released,
        )
        return CancellationResult(reservation_id, user_id, scope, released)

    def remove_occupant(
        self,
        reservation_id: str,
        acting_user_id: str,
        occupant_user_id: str,
        client_key: str = "unknown",
    ) -> CancellationResult:
        """
        Remove an additional occupant; only the primary occupant may do this.

        Raises:
            RateLimitExceeded, NotFoundError, AuthorizationError, ValidationError,
            StorageUnavailable
        """
        self.cancel_limiter.check_and_consume(client_key)

        if occupant_user_id == acting_user_id:
            raise ValidationError("Cancel the reservation instead of removing yourself")

        now = self._clock()
        with storage_transaction(
            self.engine,
            "remove_occupant",
            reservation_id=reservation_id,
            user_id=acting_user_id,
            occupant_user_id=occupant_user_id,
        ) as conn:
            self._load_active(conn, reservation_id)
            occupants = {o.user_id: o for o in get_active_occupants(conn, reservation_id)}
            acting = occupants.get(acting_user_id)
            if acting is None or not acting.is_primary:
                raise AuthorizationError(
                    "Only the primary occupant can remove occupants",
                    reservation_id=reservation_id,
                )
            if occupant_user_id not in occupants or not cancel_occupant(
                conn, reservation_id, occupant_user_id, now
            ):
                raise ValidationError(
                    "This user is not on the reservation", reservation_id=reservation_id
                )

        cancellations_total.labels(scope="occupant").inc()
        logger.info(
            "occupant_removed",
            reservation_id=reservation_id,
            removed_by=acting_user_id,
            user_id=occupant_user_id,
        )
        return CancellationResult(reservation_id, occupant_user_id, "occupant", False)

    def _load_active(self, conn: Connection, reservation_id: str) -> Any:
        reservation = get_reservation(conn, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found", reservation_id=reservation_id)
        if reservation.status != ReservationStatus.ACTIVE.value:
            raise ValidationError("Reservation is already cancelled", reservation_id=reservation_id)
        return reservation

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def check_availability(
        self, day: Union[date, datetime], user_id: Optional[str] = None
    ) -> Availability:
        """
        Whether day can still be booked, optionally for a specific user.

        A date without a capacity row has the full default capacity. With a
        user_id the user's existing bookings and the consecutive-day rule are
        taken into account too.
        """
        day = to_calendar_day(day)
        snapshot = self.ledger.snapshot(day)
        remaining = snapshot.remaining_spots

        if day < self._today():
            return Availability(day, False, remaining, "Cannot book a date in the past")
        if remaining <= 0:
            return Availability(day, False, 0, "No available spots for this date")

        if user_id is not None:
            start, end = guard_window(day, self.max_consecutive_days)
            with storage_connection(self.engine, "check_availability", user_id=user_id) as conn:
                existing = get_active_dates_for_user(conn, user_id, start, end)
            if day in existing:
                return Availability(
                    day, False, remaining, "You already have a reservation on this date"
                )
            if would_exceed(existing, day, self.max_consecutive_days):
                return Availability(
                    day,
                    False,
                    remaining,
                    f"You cannot book more than {self.max_consecutive_days} consecutive days",
                )

        return Availability(day, True, remaining)

    def available_dates(self, start: date, end: date) -> list[CapacitySnapshot]:
        """
        Days in [start, end] with at least one free spot.

        Raises:
            ValidationError: start in the past, end before start, or a range
                longer than availability_max_range_days
        """
        if start < self._today():
            raise ValidationError("Start date cannot be in the past")
        if end < start:
            raise ValidationError("End date must not be before start date")
        if (end - start).days + 1 > self.availability_max_range_days:
            raise ValidationError(
                f"Date range cannot exceed {self.availability_max_range_days} days"
            )
        return self.ledger.available_dates(start, end)

    def user_reservation_dates(self, user_id: str) -> UserReservationDates:
        """Upcoming active dates of user_id (today included) and their longest run."""
        with storage_connection(self.engine, "user_reservation_dates", user_id=user_id) as conn:
            dates = get_active_dates_for_user(conn, user_id, start=self._today())
        return UserReservationDates(user_id, dates)
