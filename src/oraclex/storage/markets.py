"""Market and outcome persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

from oraclex.models import Market, MarketStatus, Outcome
from oraclex.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

# Binary markets only: index 0 is YES, index 1 is NO.
DEFAULT_OUTCOMES: list[tuple[str, float]] = [("YES", 0.5), ("NO", 0.5)]

_MARKET_COLUMNS = [
    "id",
    "external_id",
    "title",
    "description",
    "category",
    "oracle_type",
    "end_time",
    "status",
    "winning_outcome",
    "total_staked",
    "total_volume",
    "chain_total_staked",
    "creator_id",
    "created_block",
    "created_at",
    "resolved_at",
]

_OUTCOME_COLUMNS = [
    "id",
    "market_id",
    "outcome_index",
    "name",
    "probability",
    "total_staked",
    "is_winning",
]


def find_market_id(conn: DuckDBPyConnection, external_id: str) -> int | None:
    row = conn.execute("SELECT id FROM markets WHERE external_id = ?", [external_id]).fetchone()
    return int(row[0]) if row else None


def insert_market(
    conn: DuckDBPyConnection,
    *,
    external_id: str,
    title: str,
    description: str | None,
    category: str,
    oracle_type: int,
    end_time: int,
    creator_id: int,
    chain_total_staked: float | None = None,
    created_block: int | None = None,
    created_at: int | None = None,
) -> int:
    """Insert an ACTIVE market with zeroed counters and return its id.
    created_at (ms) is the chain time of the creating block; defaults to now."""
    row = conn.execute(
        """
        INSERT INTO markets (external_id, title, description, category, oracle_type, end_time,
                             status, chain_total_staked, creator_id, created_block, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        RETURNING id
        """,
        [
            external_id,
            title,
            description,
            category,
            oracle_type,
            end_time,
            MarketStatus.ACTIVE.value,
            chain_total_staked,
            creator_id,
            created_block,
            created_at if created_at is not None else now_ms(),
        ],
    ).fetchone()
    return int(row[0])


def insert_outcomes(
    conn: DuckDBPyConnection,
    market_id: int,
    outcomes: list[tuple[str, float]] | None = None,
) -> None:
    """Insert outcomes in list order; list position becomes outcome_index."""
    rows = [
        [market_id, index, name, probability]
        for index, (name, probability) in enumerate(outcomes or DEFAULT_OUTCOMES)
    ]
    conn.executemany(
        "INSERT INTO outcomes (market_id, outcome_index, name, probability) VALUES (?, ?, ?, ?)",
        rows,
    )


def get_outcomes(conn: DuckDBPyConnection, market_id: int) -> list[Outcome]:
    rows = conn.execute(
        f"SELECT {', '.join(_OUTCOME_COLUMNS)} FROM outcomes WHERE market_id = ? ORDER BY outcome_index",
        [market_id],
    ).fetchall()
    return [Outcome(**dict(zip(_OUTCOME_COLUMNS, r))) for r in rows]


def get_market(conn: DuckDBPyConnection, external_id: str) -> Market | None:
    """Load a market with its outcomes (ordered by outcome_index)."""
    row = conn.execute(
        f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets WHERE external_id = ?",
        [external_id],
    ).fetchone()
    if row is None:
        return None
    data = dict(zip(_MARKET_COLUMNS, row))
    data["outcomes"] = get_outcomes(conn, data["id"])
    return Market(**data)


def list_markets(conn: DuckDBPyConnection, status: str | None = None) -> list[dict]:
    """List markets (newest first) as list of dicts."""
    sql = f"SELECT {', '.join(_MARKET_COLUMNS)} FROM markets"
    params: list = []
    if status:
        sql += " WHERE status = ?"
        params.append(status.upper())
    sql += " ORDER BY created_at DESC, id DESC"
    rows = conn.execute(sql, params).fetchall()
    return [dict(zip(_MARKET_COLUMNS, r)) for r in rows]


def latest_market_created_at(conn: DuckDBPyConnection) -> int | None:
    """Newest markets.created_at (ms), or None on an empty mirror."""
    row = conn.execute("SELECT MAX(created_at) FROM markets").fetchone()
    return row[0] if row and row[0] is not None else None


def increment_stake(
    conn: DuckDBPyConnection,
    market_id: int,
    outcome_id: int,
    amount: float,
) -> None:
    """Add amount to market total_staked/total_volume and outcome total_staked in place."""
    conn.execute(
        "UPDATE markets SET total_staked = total_staked + ?, total_volume = total_volume + ? WHERE id = ?",
        [amount, amount, market_id],
    )
    conn.execute(
        "UPDATE outcomes SET total_staked = total_staked + ? WHERE id = ?",
        [amount, outcome_id],
    )


def mark_market_resolved(
    conn: DuckDBPyConnection,
    market_id: int,
    winning_outcome: str,
    resolved_at: int,
) -> None:
    conn.execute(
        "UPDATE markets SET status = ?, winning_outcome = ?, resolved_at = ? WHERE id = ?",
        [MarketStatus.RESOLVED.value, winning_outcome, resolved_at, market_id],
    )


def mark_outcome_winning(conn: DuckDBPyConnection, outcome_id: int) -> None:
    conn.execute("UPDATE outcomes SET is_winning = true WHERE id = ?", [outcome_id])
