"""
Transaction helpers that translate driver failures into service errors.

Rule violations raised inside the block roll the transaction back and propagate
unchanged. SQLAlchemy failures are logged with the operation context and
re-raised as StorageUnavailable, so callers can tell an illegal action apart
from an unavailable store.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from park_admission.errors import ConflictError, StorageUnavailable
from park_admission.metrics import db_query_duration

logger = structlog.get_logger(__name__)


@contextmanager
def storage_transaction(
    engine: Engine,
    operation: str,
    conflict_message: Optional[str] = None,
    **context: Any,
) -> Iterator[Connection]:
    """
    Run a block inside engine.begin().

    Args:
        engine: SQLAlchemy engine
        operation: Operation name used for logs and the duration histogram
        conflict_message: If set, a unique-constraint violation becomes a
            ConflictError with this message instead of StorageUnavailable
        **context: Identifiers added to logs and to the raised error

    Example:
        >>> with storage_transaction(engine, "admit", reservation_id=rid) as conn:
        ...     insert_reservation(conn, ...)
    """
    try:
        with db_query_duration.labels(operation=operation).time():
            with engine.begin() as conn:
                yield conn
    except IntegrityError as e:
        if conflict_message is None:
            logger.exception("storage_integrity_error", operation=operation, **context)
            raise StorageUnavailable(operation=operation, **context) from e
        logger.info("storage_conflict", operation=operation, **context)
        raise ConflictError(conflict_message, operation=operation, **context) from e
    except SQLAlchemyError as e:
        logger.exception("storage_operation_failed", operation=operation, **context)
        raise StorageUnavailable(operation=operation, **context) from e


@contextmanager
def storage_connection(engine: Engine, operation: str, **context: Any) -> Iterator[Connection]:
    """Read-only counterpart of storage_transaction using engine.connect()."""
    try:
        with engine.connect() as conn:
            yield conn
    except SQLAlchemyError as e:
        logger.exception("storage_operation_failed", operation=operation, **context)
        raise StorageUnavailable(operation=operation, **context) from e
