"""
Shared fixtures: environment defaults, a per-test SQLite database, fixed clocks,
and resets of the process-wide rate-limit state.
"""

from __future__ import annotations

import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Generator

# Must be set before any park_admission import reads the config
os.environ.setdefault(
    "DATABASE_URL", f"sqlite:///{Path(tempfile.gettempdir()) / 'park_admission_test.db'}"
)
os.environ.setdefault("ALLOWED_ORIGINS", "*")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402

from park_admission.models.base import Base  # noqa: E402
from park_admission.models.capacity import DateCapacity  # noqa: E402, F401
from park_admission.models.reservations import Reservation  # noqa: E402, F401
from park_admission.models.transfers import TransferRequest  # noqa: E402, F401
from park_admission.rate_limit_store import MemoryRateLimitStore, rate_limit_store  # noqa: E402
from park_admission.services.admission import AdmissionCoordinator  # noqa: E402
from park_admission.services.capacity import CapacityLedger  # noqa: E402
from park_admission.services.notifications import TransferEvent, TransferNotifier  # noqa: E402
from park_admission.services.rate_limiter import (  # noqa: E402
    RateLimitConfig,
    RateLimiter,
    create_limiter,
    reset_limiters,
)
from park_admission.services.transfers import TransferWorkflow  # noqa: E402

TEST_CAPACITY = 10


class FixedClock:
    """Callable clock returning a settable timezone-aware UTC datetime."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class FakeTimer:
    """Callable epoch-seconds clock for rate limiters."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance_ms(self, ms: float) -> None:
        self.value += ms / 1000.0


@pytest.fixture(autouse=True)
def reset_rate_limit_state() -> Generator[None, None, None]:
    """Every test starts with empty counters and no cached limiters."""
    rate_limit_store.clear()
    reset_limiters()
    yield
    rate_limit_store.clear()
    reset_limiters()


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """Fresh on-disk SQLite database with all tables created."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'admission.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    """Clock fixed at 2025-01-20 12:00 UTC, so late-January dates are in the future."""
    return FixedClock(datetime(2025, 1, 20, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()


@pytest.fixture
def unlimited() -> RateLimiter:
    """Limiter with a budget no test exhausts, on a private store."""
    return create_limiter(
        "test:unlimited", RateLimitConfig(100_000, 60_000), store=MemoryRateLimitStore()
    )


@pytest.fixture
def ledger(db_engine: Engine, clock: FixedClock) -> CapacityLedger:
    return CapacityLedger(db_engine, default_max_capacity=TEST_CAPACITY, clock=clock)


@pytest.fixture
def coordinator(
    db_engine: Engine, ledger: CapacityLedger, unlimited: RateLimiter, clock: FixedClock
) -> AdmissionCoordinator:
    return AdmissionCoordinator(
        db_engine,
        ledger=ledger,
        limiter=unlimited,
        cancel_limiter=unlimited,
        max_consecutive_days=3,
        max_additional_occupants=3,
        clock=clock,
    )


@pytest.fixture
def published_events() -> list[TransferEvent]:
    return []


@pytest.fixture
def notifier(published_events: list[TransferEvent]) -> TransferNotifier:
    notifier = TransferNotifier()
    notifier.subscribe(published_events.append)
    return notifier


@pytest.fixture
def workflow(
    db_engine: Engine,
    notifier: TransferNotifier,
    unlimited: RateLimiter,
    clock: FixedClock,
) -> TransferWorkflow:
    return TransferWorkflow(
        db_engine,
        notifier=notifier,
        create_limiter=unlimited,
        respond_limiter=unlimited,
        max_consecutive_days=3,
        ttl=timedelta(hours=24),
        clock=clock,
    )


@pytest.fixture
def jan() -> Any:
    """Shorthand for dates in January 2025: jan(24) -> date(2025, 1, 24)."""
    return lambda day: date(2025, 1, day)
