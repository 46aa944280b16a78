"""DuckDB connection, schema init and transactions."""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS user_seq START 1;
CREATE SEQUENCE IF NOT EXISTS market_seq START 1;
CREATE SEQUENCE IF NOT EXISTS outcome_seq START 1;
CREATE SEQUENCE IF NOT EXISTS prediction_seq START 1;
CREATE SEQUENCE IF NOT EXISTS resolution_seq START 1;

-- Wallets seen in any event (lower-cased address)
CREATE TABLE IF NOT EXISTS users (
    id              BIGINT PRIMARY KEY DEFAULT nextval('user_seq'),
    wallet_address  VARCHAR NOT NULL UNIQUE,
    created_at      BIGINT NOT NULL
);

-- One row per on-chain market (external_id = decimal market id)
CREATE TABLE IF NOT EXISTS markets (
    id                  BIGINT PRIMARY KEY DEFAULT nextval('market_seq'),
    external_id         VARCHAR NOT NULL UNIQUE,
    title               VARCHAR NOT NULL,
    description         VARCHAR,
    category            VARCHAR NOT NULL,
    oracle_type         INTEGER NOT NULL DEFAULT 0,
    end_time            BIGINT NOT NULL,
    status              VARCHAR NOT NULL DEFAULT 'ACTIVE',
    winning_outcome     VARCHAR,
    total_staked        DOUBLE NOT NULL DEFAULT 0,
    total_volume        DOUBLE NOT NULL DEFAULT 0,
    chain_total_staked  DOUBLE,
    creator_id          BIGINT NOT NULL,
    created_block       BIGINT,
    created_at          BIGINT NOT NULL,
    resolved_at         BIGINT
);

-- Outcomes in creation order (outcome_index = on-chain index)
CREATE TABLE IF NOT EXISTS outcomes (
    id              BIGINT PRIMARY KEY DEFAULT nextval('outcome_seq'),
    market_id       BIGINT NOT NULL,
    outcome_index   INTEGER NOT NULL,
    name            VARCHAR NOT NULL,
    probability     DOUBLE NOT NULL,
    total_staked    DOUBLE NOT NULL DEFAULT 0,
    is_winning      BOOLEAN NOT NULL DEFAULT FALSE,
    UNIQUE (market_id, outcome_index)
);

-- Stakes, keyed by the originating log (tx_hash, log_index)
CREATE TABLE IF NOT EXISTS predictions (
    id                  BIGINT PRIMARY KEY DEFAULT nextval('prediction_seq'),
    user_id             BIGINT NOT NULL,
    market_id           BIGINT NOT NULL,
    outcome_id          BIGINT NOT NULL,
    amount              DOUBLE NOT NULL,
    odds                DOUBLE NOT NULL,
    potential_payout    DOUBLE NOT NULL,
    tx_hash             VARCHAR NOT NULL,
    log_index           INTEGER NOT NULL,
    block_number        BIGINT,
    status              VARCHAR NOT NULL DEFAULT 'ACTIVE',
    created_at          BIGINT NOT NULL,
    UNIQUE (tx_hash, log_index)
);

-- At most one resolution per market
CREATE TABLE IF NOT EXISTS resolutions (
    id              BIGINT PRIMARY KEY DEFAULT nextval('resolution_seq'),
    market_id       BIGINT NOT NULL UNIQUE,
    resolved_by     VARCHAR NOT NULL,
    outcome         VARCHAR NOT NULL,
    confidence      DOUBLE NOT NULL,
    human_verified  BOOLEAN NOT NULL,
    status          VARCHAR NOT NULL,
    created_at      BIGINT NOT NULL
);
"""


def now_ms() -> int:
    return int(time.time() * 1000)


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Use read_only=True when another process may be writing (e.g. oraclex sync start)."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


@contextmanager
def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
    """Run the block in one transaction: commit on success, roll back on any error."""
    conn.begin()
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
