# park_admission/main.py

import math

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from park_admission.config import ALLOWED_ORIGINS
from park_admission.errors import AdmissionError, RateLimitExceeded
from park_admission.logging_config import setup_logging
from park_admission.middleware import RequestIDMiddleware
from park_admission.routes.health import router as health_router
from park_admission.routes.metrics import router as metrics_router
from park_admission.routes.reservations import router as reservations_router
from park_admission.routes.transfers import router as transfers_router

# Initialize structured logging
setup_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Park Admission API",
    description="Reservation admission, capacity and transfer control",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS if "*" not in ALLOWED_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIDMiddleware)

# Register routers
app.include_router(health_router, tags=["Health"])
app.include_router(metrics_router, tags=["Metrics"])
app.include_router(reservations_router, tags=["Reservations"])
app.include_router(transfers_router, tags=["Transfers"])


@app.exception_handler(AdmissionError)
def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    """Render typed admission errors as {"success": false, "kind", "error"}."""
    headers = {}
    if isinstance(exc, RateLimitExceeded) and exc.retry_after is not None:
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))

    logger.info(
        "request_rejected",
        path=request.url.path,
        kind=exc.kind.value,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
