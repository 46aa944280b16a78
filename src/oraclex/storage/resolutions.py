"""Resolution persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from oraclex.models import Resolution
from oraclex.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

RESOLVED_BY_ORACLE = "AI_ORACLE"
STATUS_CONFIRMED = "CONFIRMED"


def insert_resolution(
    conn: DuckDBPyConnection,
    market_id: int,
    outcome: str,
    *,
    resolved_by: str = RESOLVED_BY_ORACLE,
    confidence: float = 1.0,
    human_verified: bool = True,
    created_at: int | None = None,
) -> int:
    row = conn.execute(
        """
        INSERT INTO resolutions (market_id, resolved_by, outcome, confidence, human_verified, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        RETURNING id
        """,
        [
            market_id,
            resolved_by,
            outcome,
            confidence,
            human_verified,
            STATUS_CONFIRMED,
            created_at if created_at is not None else now_ms(),
        ],
    ).fetchone()
    return int(row[0])


def get_resolution(conn: DuckDBPyConnection, market_id: int) -> Resolution | None:
    row = conn.execute(
        """
        SELECT id, market_id, resolved_by, outcome, confidence, human_verified, status, created_at
        FROM resolutions WHERE market_id = ?
        """,
        [market_id],
    ).fetchone()
    if row is None:
        return None
    columns = ["id", "market_id", "resolved_by", "outcome", "confidence", "human_verified", "status", "created_at"]
    return Resolution(**dict(zip(columns, row)))
