"""
Dialect-aware INSERT ... ON CONFLICT helpers.

PostgreSQL and SQLite both support ON CONFLICT but expose it through
different insert() constructs. These helpers pick the right construct from
the connection's dialect so the writers stay dialect-agnostic.
"""

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection


def _insert_for(conn: Connection, table: type) -> Any:
    if conn.dialect.name == "postgresql":
        return pg_insert(table)
    if conn.dialect.name == "sqlite":
        return sqlite_insert(table)
    raise ValueError(f"ON CONFLICT is not supported for dialect {conn.dialect.name!r}")


def insert_ignore(
    conn: Connection,
    table: type,
    row: dict[str, Any],
    conflict_columns: list[str],
) -> int:
    """
    Insert a row unless one with the same conflict key already exists.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class (e.g., DateCapacity)
        row: Column values to insert
        conflict_columns: Columns of the unique key (e.g., ["date"])

    Returns:
        int: Number of inserted rows (0 when the row already existed)

    Example:
        >>> with engine.begin() as conn:
        ...     insert_ignore(conn, DateCapacity, {"date": day, ...}, ["date"])
    """
    stmt = _insert_for(conn, table).values(row).on_conflict_do_nothing(
        index_elements=conflict_columns
    )
    return conn.execute(stmt).rowcount


def upsert(
    conn: Connection,
    table: type,
    row: dict[str, Any],
    conflict_columns: list[str],
    update_columns: list[str],
) -> None:
    """
    Insert a row or overwrite update_columns on the existing one.

    Args:
        conn: Active database connection (within transaction)
        table: SQLAlchemy ORM table class
        row: Column values to insert
        conflict_columns: Columns of the unique key
        update_columns: Columns copied from the proposed row on conflict
    """
    stmt = _insert_for(conn, table).values(row)
    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={col: getattr(stmt.excluded, col) for col in update_columns},
    )
    conn.execute(stmt)
