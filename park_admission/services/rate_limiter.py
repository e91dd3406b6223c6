"""
Fixed-window request budgets per (purpose, client key).

Each limiter owns one purpose (e.g. "reservation:create") and a budget of
max_requests per window_ms. Counters live in a pluggable RateLimitStore keyed by
"purpose:clientKey". When a window has run its full length the next request
starts a fresh window, so a burst straddling a boundary can get up to twice the
nominal rate through. Rejections never mutate the counter.

Example:
    >>> limiter = create_limiter("reservation:create", RateLimitConfig(5, 60000))
    >>> limiter.check_and_consume("10.0.0.1")  # raises RateLimitExceeded on the 6th call
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from park_admission.config import (
    RATE_LIMIT_CLEANUP_INTERVAL_SECONDS,
    RESERVATION_CANCEL_RATE_LIMIT_MAX_REQUESTS,
    RESERVATION_CANCEL_RATE_LIMIT_WINDOW_MS,
    RESERVATION_RATE_LIMIT_MAX_REQUESTS,
    RESERVATION_RATE_LIMIT_WINDOW_MS,
    TRANSFER_RATE_LIMIT_MAX_REQUESTS,
    TRANSFER_RATE_LIMIT_WINDOW_MS,
)
from park_admission.errors import RateLimitExceeded
from park_admission.metrics import rate_limit_decisions, rate_limit_entries
from park_admission.rate_limit_store import (
    MemoryRateLimitStore,
    RateLimitStore,
    rate_limit_store,
)

logger = structlog.get_logger(__name__)

RESERVATION_CREATE = "reservation:create"
RESERVATION_CANCEL = "reservation:cancel"
TRANSFER_CREATE = "transfer:create"
TRANSFER_RESPOND = "transfer:respond"


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be positive")


DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    RESERVATION_CREATE: RateLimitConfig(
        RESERVATION_RATE_LIMIT_MAX_REQUESTS, RESERVATION_RATE_LIMIT_WINDOW_MS
    ),
    RESERVATION_CANCEL: RateLimitConfig(
        RESERVATION_CANCEL_RATE_LIMIT_MAX_REQUESTS, RESERVATION_CANCEL_RATE_LIMIT_WINDOW_MS
    ),
    TRANSFER_CREATE: RateLimitConfig(
        TRANSFER_RATE_LIMIT_MAX_REQUESTS, TRANSFER_RATE_LIMIT_WINDOW_MS
    ),
    TRANSFER_RESPOND: RateLimitConfig(
        TRANSFER_RATE_LIMIT_MAX_REQUESTS, TRANSFER_RATE_LIMIT_WINDOW_MS
    ),
}


class RateLimiter:
    """
    Request budget for one purpose.

    Attributes:
        purpose: Namespace of the budget, prefixed to every store key
        config: max_requests per window_ms
        store: Storage provider holding the counters
    """

    def __init__(
        self,
        purpose: str,
        config: RateLimitConfig,
        store: RateLimitStore,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = RATE_LIMIT_CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self.purpose = purpose
        self.config = config
        self.store = store
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()
        self._cleanup_lock = threading.Lock()

    def _key(self, client_key: str) -> str:
        return f"{self.purpose}:{client_key}"

    def check_and_consume(self, client_key: str) -> None:
        """
        Consume one request from client_key's budget.

        Args:
            client_key: Client identifier, usually the client network address

        Raises:
            RateLimitExceeded: if the budget for the current window is exhausted
        """
        now = self._clock()
        self._maybe_cleanup(now)

        key = self._key(client_key)
        entry = self.store.check_limit(key, self.config.window_ms, now)

        if entry is not None and entry.count >= self.config.max_requests:
            retry_after = max(
                0.0, entry.window_started_at + self.config.window_ms / 1000.0 - now
            )
            logger.warning(
                "rate_limit_exceeded",
                purpose=self.purpose,
                client_key=client_key,
                count=entry.count,
                max_requests=self.config.max_requests,
                window_ms=self.config.window_ms,
                window_started_at=entry.window_started_at,
                retry_after=retry_after,
            )
            rate_limit_decisions.labels(purpose=self.purpose, decision="rejected").inc()
            raise RateLimitExceeded(
                retry_after=retry_after, purpose=self.purpose, client_key=client_key
            )

        self.store.increment(key, self.config.window_ms, now)
        rate_limit_decisions.labels(purpose=self.purpose, decision="allowed").inc()

    def reset(self, client_key: str) -> None:
        """Lift the throttle for one client."""
        self.store.reset(self._key(client_key))

    def _maybe_cleanup(self, now: float) -> None:
        # Sweeps piggy-back on access; at most one per interval per limiter.
        if now - self._last_cleanup < self._cleanup_interval:
            return
        if not self._cleanup_lock.acquire(blocking=False):
            return
        try:
            self._last_cleanup = now
            self.store.cleanup(self.config.window_ms, now, prefix=f"{self.purpose}:")
            if isinstance(self.store, MemoryRateLimitStore):
                rate_limit_entries.set(self.store.size())
        finally:
            self._cleanup_lock.release()


# Limiter registry, one limiter per purpose
_limiters: dict[str, RateLimiter] = {}
_registry_lock = threading.Lock()


def create_limiter(
    purpose: str,
    config: Optional[RateLimitConfig] = None,
    store: Optional[RateLimitStore] = None,
    clock: Optional[Callable[[], float]] = None,
) -> RateLimiter:
    """
    Build a limiter for a purpose.

    Args:
        purpose: Budget namespace, e.g. "reservation:create"
        config: Budget; defaults to DEFAULT_RATE_LIMITS[purpose]
        store: Storage provider; defaults to the process-wide in-memory store
        clock: Returns epoch seconds; defaults to time.time

    Raises:
        ValueError: if no config is given and the purpose has no default
    """
    if config is None:
        if purpose not in DEFAULT_RATE_LIMITS:
            raise ValueError(f"No default rate limit configured for purpose {purpose!r}")
        config = DEFAULT_RATE_LIMITS[purpose]

    return RateLimiter(
        purpose=purpose,
        config=config,
        store=store if store is not None else rate_limit_store,
        clock=clock or time.time,
    )


def get_limiter(purpose: str) -> RateLimiter:
    """Return the shared limiter for a purpose, creating it with defaults on first use."""
    with _registry_lock:
        limiter = _limiters.get(purpose)
        if limiter is None:
            limiter = create_limiter(purpose)
            _limiters[purpose] = limiter
        return limiter


def reset_limiters() -> None:
    """Forget all shared limiters. Counters in the store are left as they are."""
    with _registry_lock:
        _limiters.clear()
