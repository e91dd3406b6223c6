"""
Health and readiness check endpoints for Kubernetes probes.

Health checks are used by container orchestration platforms to determine
if the application should be restarted or if it can receive traffic.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from park_admission.db.engine import check_engine_health
from park_admission.dependencies import get_db_engine
from park_admission.rate_limit_store import rate_limit_store

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check() -> JSONResponse:
    """
    Liveness probe endpoint.

    Returns 200 if the application is running.

    Example:
        >>> GET /health
        {"status": "ok"}
    """
    return JSONResponse(content={"status": "ok"})


@router.get("/ready")
def readiness_check(db_engine: Engine = Depends(get_db_engine)) -> JSONResponse:
    """
    Readiness probe endpoint.

    Returns 200 if the database is accessible, 503 otherwise. The rate-limit
    store is in-process and always reported, along with its tracked key count.

    Example:
        >>> GET /ready
        {"status": "ready", "checks": {"database": "ok", "rate_limit_store": "ok"},
         "rate_limit_entries": 3}
    """
    checks = {"rate_limit_store": "ok"}
    entries = rate_limit_store.size()

    if check_engine_health(db_engine):
        checks["database"] = "ok"
        return JSONResponse(
            content={"status": "ready", "checks": checks, "rate_limit_entries": entries}
        )

    logger.error("readiness_check_failed", reason="database_not_accessible")
    checks["database"] = "failed"
    return JSONResponse(
        status_code=503,
        content={"status": "not ready", "checks": checks, "rate_limit_entries": entries},
    )
