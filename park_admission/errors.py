"""
Error taxonomy for admission and transfer decisions.

Every rule violation is raised as a subclass of AdmissionError carrying a
machine-readable kind, a user-displayable message and the HTTP status the
web adapter should answer with. StorageUnavailable is the one member that is
not a rule violation: it signals that the backing store failed, so callers can
tell "this action is illegal" apart from "the system is unavailable".

Example:
    >>> try:
    ...     coordinator.admit_reservation(user_id, day, client_key="10.0.0.1")
    ... except CapacityExceeded as e:
    ...     print(e.kind, e.message)
    capacity_exceeded No available spots for this date
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced to callers."""

    VALIDATION = "validation_error"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    AUTHENTICATION = "authentication_error"
    AUTHORIZATION = "authorization_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSFER_EXPIRED = "transfer_expired"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class AdmissionError(Exception):
    """
    Base class for all typed admission errors.

    Attributes:
        kind: ErrorKind identifying the taxonomy entry
        message: Human readable message, safe to show to end users
        status_code: HTTP status used by the web adapter
        context: Extra identifiers for logging (never shown to users)
    """

    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = 400
    default_message: str = "Request could not be processed"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error body."""
        return {"success": False, "kind": self.kind.value, "error": self.message}


class ValidationError(AdmissionError):
    """Malformed input or a rule violation such as the consecutive-day limit."""

    kind = ErrorKind.VALIDATION
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AdmissionError):
    kind = ErrorKind.AUTHENTICATION
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(AdmissionError):
    kind = ErrorKind.AUTHORIZATION
    status_code = 403
    default_message = "Not authorized"


class NotFoundError(AdmissionError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "Not found"


class ConflictError(AdmissionError):
    """Duplicate or overlapping state, e.g. a second PENDING transfer."""

    kind = ErrorKind.CONFLICT
    status_code = 409
    default_message = "Request conflicts with the current state"


class CapacityExceeded(AdmissionError):
    kind = ErrorKind.CAPACITY_EXCEEDED
    status_code = 409
    default_message = "No available spots for this date"


class TransferExpired(AdmissionError):
    kind = ErrorKind.TRANSFER_EXPIRED
    status_code = 410
    default_message = "This transfer request has expired and can no longer be processed"


class RateLimitExceeded(AdmissionError):
    """
    Raised when a client exhausted its request budget for a purpose.

    Attributes:
        retry_after: Seconds until the current window rolls over
    """

    kind = ErrorKind.RATE_LIMIT_EXCEEDED
    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(
        self, message: str | None = None, retry_after: float | None = None, **context: Any
    ) -> None:
        super().__init__(message, **context)
        self.retry_after = retry_after


class StorageUnavailable(AdmissionError):
    kind = ErrorKind.STORAGE_UNAVAILABLE
    status_code = 503
    default_message = "Service temporarily unavailable"
