"""
Prometheus metrics for admission decisions, transfers, and rate limiting.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., admissions)
    - Histogram: Observations bucketed by value (e.g., transaction latency)
    - Gauge: Point-in-time value that can go up or down (e.g., tracked rate-limit keys)

Example:
    >>> from park_admission.metrics import admissions_total, db_query_duration
    >>> with db_query_duration.labels(operation="admit").time():
    ...     result = coordinator.admit_reservation(user_id, day, client_key=ip)
    >>> admissions_total.labels(outcome="admitted").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Admission Metrics
# =============================================================================

admissions_total = Counter(
    "park_admission_admissions_total",
    "Reservation admission decisions",
    ["outcome"],
)
"""
Counter for admission decisions.

Labels:
    outcome: admitted, consecutive_day_limit, capacity_exceeded, conflict,
             rate_limited, invalid, storage_error
"""

cancellations_total = Counter(
    "park_admission_cancellations_total",
    "Reservation cancellations",
    ["scope"],
)
"""
Counter for cancellations.

Labels:
    scope: reservation (primary cancelled everything), occupant (one spot left or removed)
"""

# =============================================================================
# Transfer Metrics
# =============================================================================

transfers_total = Counter(
    "park_admission_transfers_total",
    "Transfer workflow transitions",
    ["event"],
)
"""
Counter for transfer transitions.

Labels:
    event: created, accepted, declined, expired
"""

# =============================================================================
# Rate Limit Metrics
# =============================================================================

rate_limit_decisions = Counter(
    "park_admission_rate_limit_decisions_total",
    "Rate limiter decisions",
    ["purpose", "decision"],
)
"""
Counter for rate limiter decisions.

Labels:
    purpose: Limiter purpose (e.g., "reservation:create")
    decision: allowed or rejected
"""

rate_limit_entries = Gauge(
    "park_admission_rate_limit_entries",
    "Number of client keys currently tracked by the in-memory rate limit store",
)

# =============================================================================
# Database Metrics
# =============================================================================

db_query_duration = Histogram(
    "park_admission_db_query_duration_seconds",
    "Duration of admission and transfer transactions in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, float("inf")),
)
"""
Histogram for transaction duration.

Labels:
    operation: admit, cancel, remove_occupant, transfer_create, transfer_respond

Buckets: 5ms, 10ms, 50ms, 100ms, 250ms, 500ms, 1s, 2.5s, 5s, +Inf
"""
