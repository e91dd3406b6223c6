"""
In-memory storage for fixed-window rate-limit counters.

This module provides the default storage provider for RateLimiter. Entries are
keyed by "purpose:clientKey" and hold a request count plus the time the current
window started. Entries are disposable: losing them only resets a client's budget.

Any object implementing the RateLimitStore protocol can replace the in-memory
store (for example a Redis-backed store shared by several instances) without
changing the limiter or its call sites.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitEntry:
    """
    Snapshot of one client's counter.

    Attributes:
        count: Requests consumed in the current window
        window_started_at: Epoch seconds at which the current window began
    """

    count: int
    window_started_at: float


class RateLimitStore(Protocol):
    """Capability set a rate-limit storage provider must offer."""

    def check_limit(self, key: str, window_ms: int, now: float) -> Optional[RateLimitEntry]:
        """Return the live entry for key, or None if missing or its window has rolled over."""
        ...

    def increment(self, key: str, window_ms: int, now: float) -> RateLimitEntry:
        """Consume one request for key, starting a fresh window if needed."""
        ...

    def reset(self, key: str) -> None:
        """Forget key entirely."""
        ...

    def cleanup(self, window_ms: int, now: float, prefix: str = "") -> int:
        """Remove entries under prefix whose window has expired; return how many."""
        ...


def _window_expired(entry: RateLimitEntry, window_ms: int, now: float) -> bool:
    return (now - entry.window_started_at) * 1000.0 >= window_ms


class MemoryRateLimitStore:
    """
    Thread-safe in-process rate-limit store.

    A single lock guards the map, so increment is atomic with respect to the
    window rollover decision. Counters live only as long as the process.

    Example:
        >>> store = MemoryRateLimitStore()
        >>> store.increment("reservation:create:10.0.0.1", 60000, now=0.0)
        RateLimitEntry(count=1, window_started_at=0.0)
        >>> store.check_limit("reservation:create:10.0.0.1", 60000, now=61.0) is None
        True
    """

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def check_limit(self, key: str, window_ms: int, now: float) -> Optional[RateLimitEntry]:
        """
        Look up the counter for key in its current window.

        Args:
            key: "purpose:clientKey"
            window_ms: Window length in milliseconds
            now: Current epoch seconds

        Returns:
            The entry if its window is still open, None otherwise
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or _window_expired(entry, window_ms, now):
                return None
            return entry

    def increment(self, key: str, window_ms: int, now: float) -> RateLimitEntry:
        """
        Count one request against key.

        If the stored window has rolled over (or there is no entry yet) a new
        window starts at now with a count of 1.

        Returns:
            The entry after the increment
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or _window_expired(entry, window_ms, now):
                updated = RateLimitEntry(count=1, window_started_at=now)
            else:
                updated = RateLimitEntry(
                    count=entry.count + 1, window_started_at=entry.window_started_at
                )
            self._entries[key] = updated
            return updated

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self, window_ms: int, now: float, prefix: str = "") -> int:
        """
        Drop expired entries.

        Only keys starting with prefix are considered, so limiters with different
        window lengths sharing one store never evict each other's live entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if key.startswith(prefix) and _window_expired(entry, window_ms, now)
            ]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("Rate limit cleanup removed %d entries (prefix=%r)", len(expired), prefix)
        return len(expired)

    def clear(self) -> None:
        """
        Clear all counters.

        Useful for testing or to lift every throttle at once.
        """
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        """
        Get number of tracked keys.

        Returns:
            Number of entries currently stored (expired ones included until swept)
        """
        with self._lock:
            return len(self._entries)


# Global store shared by every limiter created without an explicit store.
# Single-process only; run one admission authority per store.
rate_limit_store = MemoryRateLimitStore()
