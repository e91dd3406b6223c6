"""
Unit tests for the fixed-window rate limiter.
"""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from park_admission.errors import ErrorKind, RateLimitExceeded
from park_admission.rate_limit_store import MemoryRateLimitStore, rate_limit_store
from park_admission.services.rate_limiter import (
    DEFAULT_RATE_LIMITS,
    RESERVATION_CREATE,
    RateLimitConfig,
    RateLimiter,
    create_limiter,
    get_limiter,
    reset_limiters,
)

CONFIG = RateLimitConfig(max_requests=5, window_ms=60_000)


@pytest.fixture
def store() -> MemoryRateLimitStore:
    return MemoryRateLimitStore()


@pytest.fixture
def limiter(store: MemoryRateLimitStore, timer) -> RateLimiter:
    return create_limiter(RESERVATION_CREATE, CONFIG, store=store, clock=timer)


@pytest.mark.unit
def test_sixth_call_in_window_is_rejected(limiter: RateLimiter) -> None:
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check_and_consume("10.0.0.1")

    assert exc_info.value.kind is ErrorKind.RATE_LIMIT_EXCEEDED
    assert exc_info.value.status_code == 429


@pytest.mark.unit
def test_rejection_does_not_consume_budget(
    limiter: RateLimiter, store: MemoryRateLimitStore, timer
) -> None:
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")
    for _ in range(3):
        with pytest.raises(RateLimitExceeded):
            limiter.check_and_consume("10.0.0.1")

    entry = store.check_limit("reservation:create:10.0.0.1", CONFIG.window_ms, timer())
    assert entry is not None
    assert entry.count == 5


@pytest.mark.unit
def test_window_rollover_restores_budget(limiter: RateLimiter, timer) -> None:
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")
    with pytest.raises(RateLimitExceeded):
        limiter.check_and_consume("10.0.0.1")

    timer.advance_ms(60_001)

    limiter.check_and_consume("10.0.0.1")


@pytest.mark.unit
def test_distinct_client_keys_have_independent_budgets(limiter: RateLimiter) -> None:
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")

    for _ in range(5):
        limiter.check_and_consume("10.0.0.2")

    with pytest.raises(RateLimitExceeded):
        limiter.check_and_consume("10.0.0.1")


@pytest.mark.unit
def test_purposes_sharing_a_store_do_not_interfere(store: MemoryRateLimitStore, timer) -> None:
    create = create_limiter("reservation:create", CONFIG, store=store, clock=timer)
    cancel = create_limiter("reservation:cancel", CONFIG, store=store, clock=timer)

    for _ in range(5):
        create.check_and_consume("10.0.0.1")

    cancel.check_and_consume("10.0.0.1")
    assert store.size() == 2


@pytest.mark.unit
def test_boundary_burst_admits_up_to_twice_the_rate(limiter: RateLimiter, timer) -> None:
    """Fixed windows: 5 at the end of one window and 5 at the start of the next all pass."""
    limiter.check_and_consume("10.0.0.1")  # opens the window
    timer.advance_ms(59_000)
    for _ in range(4):
        limiter.check_and_consume("10.0.0.1")

    timer.advance_ms(1_000)  # exactly windowMs after the window started
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")

    with pytest.raises(RateLimitExceeded):
        limiter.check_and_consume("10.0.0.1")


@pytest.mark.unit
def test_retry_after_counts_down_to_window_end(limiter: RateLimiter, timer) -> None:
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")
    timer.advance_ms(15_000)

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check_and_consume("10.0.0.1")

    assert exc_info.value.retry_after == pytest.approx(45.0)


@pytest.mark.unit
def test_rejection_is_logged_with_window_snapshot(limiter: RateLimiter, monkeypatch) -> None:
    mock_logger = Mock()
    monkeypatch.setattr("park_admission.services.rate_limiter.logger", mock_logger)

    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")
    with pytest.raises(RateLimitExceeded):
        limiter.check_and_consume("10.0.0.1")

    mock_logger.warning.assert_called_once()
    args, kwargs = mock_logger.warning.call_args
    assert args[0] == "rate_limit_exceeded"
    assert kwargs["purpose"] == RESERVATION_CREATE
    assert kwargs["client_key"] == "10.0.0.1"
    assert kwargs["count"] == 5
    assert kwargs["max_requests"] == 5
    assert kwargs["window_ms"] == 60_000


@pytest.mark.unit
def test_reset_lifts_throttle(limiter: RateLimiter) -> None:
    for _ in range(5):
        limiter.check_and_consume("10.0.0.1")

    limiter.reset("10.0.0.1")

    limiter.check_and_consume("10.0.0.1")


@pytest.mark.unit
def test_periodic_cleanup_drops_expired_entries(store: MemoryRateLimitStore, timer) -> None:
    limiter = RateLimiter(
        "reservation:create", CONFIG, store, clock=timer, cleanup_interval=30.0
    )
    limiter.check_and_consume("10.0.0.1")
    limiter.check_and_consume("10.0.0.2")
    assert store.size() == 2

    timer.advance_ms(61_000)
    limiter.check_and_consume("10.0.0.3")

    assert store.size() == 1


@pytest.mark.unit
def test_limiter_uses_injected_store() -> None:
    store = Mock()
    store.check_limit.return_value = None
    limiter = create_limiter("custom", CONFIG, store=store, clock=lambda: 0.0)

    limiter.check_and_consume("abc")

    store.check_limit.assert_called_once_with("custom:abc", 60_000, 0.0)
    store.increment.assert_called_once_with("custom:abc", 60_000, 0.0)


@pytest.mark.unit
def test_create_limiter_without_default_requires_config() -> None:
    with pytest.raises(ValueError):
        create_limiter("unknown:purpose")


@pytest.mark.unit
def test_config_rejects_non_positive_values() -> None:
    with pytest.raises(ValueError):
        RateLimitConfig(max_requests=0, window_ms=1000)
    with pytest.raises(ValueError):
        RateLimitConfig(max_requests=1, window_ms=0)


@pytest.mark.unit
def test_get_limiter_returns_shared_instance_with_defaults() -> None:
    first = get_limiter(RESERVATION_CREATE)
    second = get_limiter(RESERVATION_CREATE)

    assert first is second
    assert first.config == DEFAULT_RATE_LIMITS[RESERVATION_CREATE]
    assert first.store is rate_limit_store

    reset_limiters()
    assert get_limiter(RESERVATION_CREATE) is not first


@pytest.mark.unit
def test_default_reservation_budget_is_five_per_minute() -> None:
    assert DEFAULT_RATE_LIMITS[RESERVATION_CREATE] == RateLimitConfig(5, 60_000)
