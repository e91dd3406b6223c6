"""
SQLAlchemy engine singleton with production-ready connection pooling.

Admissions and transfer responses are short transactions that hold row locks
on date_capacity and transfer_requests, so the pool is sized for many
concurrent request threads rather than for long-running queries.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from park_admission.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")

engine: Engine = create_engine(
    DATABASE_URL,
    future=True,
    pool_size=10,  # Number of connections to maintain in the pool
    max_overflow=20,  # Additional connections when pool is exhausted
    pool_pre_ping=True,  # Verify connections before using (detect stale connections)
    pool_recycle=3600,  # Recycle connections after 1 hour
    echo=False,
)


def check_engine_health(target: Engine | None = None) -> bool:
    """
    Check if database engine is healthy and connections are working.

    Used by the /ready endpoint to verify database connectivity before
    allowing traffic to the service.

    Args:
        target: Engine to probe (defaults to the module singleton)

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with (target or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
