"""
FastAPI dependency injection providers.

This module contains dependency providers for FastAPI routes. Identity and
client address are supplied by the upstream auth collaborator: the user id
arrives in the X-User-Id header and is trusted as-is.

Dependencies can be overridden in tests using app.dependency_overrides, making
it easy to inject a test engine or pre-configured services.
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.engine import Engine

from park_admission.db.engine import engine
from park_admission.errors import AuthenticationError
from park_admission.services.admission import AdmissionCoordinator
from park_admission.services.transfers import TransferWorkflow


def get_db_engine() -> Generator[Engine, None, None]:
    """
    Provide database engine for dependency injection.

    Yields:
        Engine: SQLAlchemy database engine

    Testing Example:
        >>> app.dependency_overrides[get_db_engine] = lambda: test_engine
    """
    yield engine


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Authenticated user id from the X-User-Id header.

    Raises:
        AuthenticationError: if the header is missing or blank
    """
    if x_user_id is None or not x_user_id.strip():
        raise AuthenticationError()
    return x_user_id.strip()


def get_client_address(request: Request) -> str:
    """
    Rate-limit key for the calling client.

    First X-Forwarded-For address, else the peer host, else "unknown".
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_admission_coordinator(
    db_engine: Engine = Depends(get_db_engine),
) -> AdmissionCoordinator:
    return AdmissionCoordinator(db_engine)


def get_transfer_workflow(db_engine: Engine = Depends(get_db_engine)) -> TransferWorkflow:
    return TransferWorkflow(db_engine)
