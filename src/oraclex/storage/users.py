"""User persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from oraclex.models import User
from oraclex.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def get_or_create_user(conn: DuckDBPyConnection, wallet_address: str) -> int:
    """Return the user id for an address, inserting the row on first sight.
    The UNIQUE constraint settles concurrent first sightings."""
    address = wallet_address.lower()
    conn.execute(
        """
        INSERT INTO users (wallet_address, created_at) VALUES (?, ?)
        ON CONFLICT (wallet_address) DO NOTHING
        """,
        [address, now_ms()],
    )
    row = conn.execute("SELECT id FROM users WHERE wallet_address = ?", [address]).fetchone()
    return int(row[0])


def get_user(conn: DuckDBPyConnection, wallet_address: str) -> User | None:
    row = conn.execute(
        "SELECT id, wallet_address, created_at FROM users WHERE wallet_address = ?",
        [wallet_address.lower()],
    ).fetchone()
    if row is None:
        return None
    return User(id=row[0], wallet_address=row[1], created_at=row[2])
