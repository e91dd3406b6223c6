"""
Prometheus scrape endpoint.

The rate-limit store lives in process memory and only reports its size when a
limiter sweeps it, so the gauge is refreshed on every scrape.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from park_admission.metrics import rate_limit_entries
from park_admission.rate_limit_store import rate_limit_store

router = APIRouter()


@router.get("/metrics", response_class=Response)
async def metrics() -> Any:
    """Admission, transfer, rate-limit and storage metrics in text exposition format."""
    rate_limit_entries.set(rate_limit_store.size())
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
