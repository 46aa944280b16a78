"""Prediction persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from oraclex.models import Prediction
from oraclex.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_COLUMNS = [
    "id",
    "user_id",
    "market_id",
    "outcome_id",
    "amount",
    "odds",
    "potential_payout",
    "tx_hash",
    "log_index",
    "block_number",
    "status",
    "created_at",
]


def prediction_exists(conn: DuckDBPyConnection, tx_hash: str, log_index: int) -> bool:
    row = conn.execute(
        "SELECT 1 FROM predictions WHERE tx_hash = ? AND log_index = ?",
        [tx_hash.lower(), log_index],
    ).fetchone()
    return row is not None


def insert_prediction(
    conn: DuckDBPyConnection,
    *,
    user_id: int,
    market_id: int,
    outcome_id: int,
    amount: float,
    odds: float,
    tx_hash: str,
    log_index: int,
    block_number: int | None = None,
    created_at: int | None = None,
) -> int:
    """Insert an ACTIVE prediction; potential payout is amount / odds.
    created_at (ms) is the chain time of the block; defaults to now."""
    row = conn.execute(
        """
        INSERT INTO predictions (user_id, market_id, outcome_id, amount, odds, potential_payout,
                                 tx_hash, log_index, block_number, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'ACTIVE', ?)
        RETURNING id
        """,
        [
            user_id,
            market_id,
            outcome_id,
            amount,
            odds,
            amount / odds,
            tx_hash.lower(),
            log_index,
            block_number,
            created_at if created_at is not None else now_ms(),
        ],
    ).fetchone()
    return int(row[0])


def list_predictions(conn: DuckDBPyConnection, market_id: int, limit: int = 20) -> list[Prediction]:
    """Newest predictions for a market."""
    rows = conn.execute(
        f"SELECT {', '.join(_COLUMNS)} FROM predictions WHERE market_id = ? ORDER BY id DESC LIMIT ?",
        [market_id, limit],
    ).fetchall()
    return [Prediction(**dict(zip(_COLUMNS, r))) for r in rows]
