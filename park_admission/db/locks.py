"""
Per-user transaction locks.

The consecutive-day rule reads a user's dates and then writes a new one.
On PostgreSQL two transactions for the same user are serialized with a
transaction-scoped advisory lock keyed on the user id, released at commit or
rollback. SQLite holds a database-wide write lock for the whole transaction
once it writes, so nothing extra is taken there.
"""

from typing import Iterable

from sqlalchemy import text
from sqlalchemy.engine import Connection

# Keeps these keys apart from other advisory-lock users of the same database
USER_LOCK_NAMESPACE = "park_admission:user:"


def lock_users(conn: Connection, user_ids: Iterable[str]) -> list[str]:
    """
    Take the advisory lock of every user in user_ids for the rest of the transaction.

    Locks are taken in sorted order so two transactions locking overlapping
    sets cannot deadlock.

    Returns:
        list[str]: The user ids locked, in lock order (empty on non-PostgreSQL dialects)
    """
    if conn.dialect.name != "postgresql":
        return []

    ordered = sorted(set(user_ids))
    for user_id in ordered:
        conn.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": USER_LOCK_NAMESPACE + user_id},
        )
    return ordered
