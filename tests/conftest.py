"""Shared fixtures: temporary DuckDB, an in-memory event source, event builders."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import Any

import pytest

from oraclex.ingestion.base import EventSource
from oraclex.ingestion.projection import EventProjector
from oraclex.models import (
    EventMeta,
    MarketCreated,
    MarketDetails,
    MarketResolved,
    NetworkInfo,
    PredictionPlaced,
)
from oraclex.storage.db import get_connection, init_schema

CREATOR = "0xAA00000000000000000000000000000000000001"
BETTOR = "0xBB00000000000000000000000000000000000002"
ONE_ETHER = 10**18


class FakeEventSource(EventSource):
    """Scripted chain: logs per block, optional failing windows and filter batches."""

    def __init__(
        self,
        events: list | None = None,
        *,
        head: int = 5000,
        head_timestamp: int = 1_700_000_000,
        chain_id: int = 97,
        fail_windows: set[tuple[int, int]] | None = None,
        connect_error: Exception | None = None,
        heads: list[int] | None = None,
    ) -> None:
        self.events = list(events or [])
        self.head = head
        # Successive get_latest_block answers; the last one sticks.
        self.heads = list(heads or [])
        self.head_timestamp = head_timestamp
        self.chain_id = chain_id
        self.fail_windows = fail_windows or set()
        self.connect_error = connect_error
        self.log_queries: list[tuple[int, int]] = []
        self.market_reads: list[int] = []
        self.filters_created: list[int | None] = []
        self.filters_uninstalled: list[Any] = []
        self.filter_batches: list[list | Exception] = []
        self.details: dict[int, MarketDetails] = {}

    async def connect(self) -> NetworkInfo:
        if self.connect_error is not None:
            raise self.connect_error
        return NetworkInfo(chain_id=self.chain_id, name="bsc-testnet")

    async def get_latest_block(self) -> int:
        if self.heads:
            self.head = self.heads.pop(0)
        return self.head

    async def get_latest_block_header(self) -> tuple[int, int]:
        return self.head, self.head_timestamp

    async def get_block_timestamp(self, block_number: int) -> int:
        # 3s blocks counted back from the head
        return self.head_timestamp - (self.head - block_number) * 3

    async def get_logs(self, from_block: int, to_block: int) -> list:
        self.log_queries.append((from_block, to_block))
        if (from_block, to_block) in self.fail_windows:
            raise ConnectionError(f"rpc error for {from_block}-{to_block}")
        return [e for e in self.events if from_block <= e.meta.block_number <= to_block]

    async def get_market(self, market_id: int) -> MarketDetails:
        self.market_reads.append(market_id)
        return self.details.get(
            market_id,
            MarketDetails(
                question="Q?",
                end_time=1735689600,
                resolved=False,
                outcome=0,
                total_staked=0,
                creator=CREATOR.lower(),
                category="Crypto",
            ),
        )

    async def create_filter(self, from_block: int | None = None) -> Any:
        self.filters_created.append(from_block)
        return f"0xfilter{len(self.filters_created)}"

    async def get_filter_changes(self, filter_id: Any) -> list:
        if not self.filter_batches:
            return []
        batch = self.filter_batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch

    async def uninstall_filter(self, filter_id: Any) -> None:
        self.filters_uninstalled.append(filter_id)


def meta(block: int = 100, tx: str = "0x01", log_index: int = 0) -> EventMeta:
    return EventMeta(block_number=block, tx_hash=tx, log_index=log_index)


def market_created(market_id: int = 7, block: int = 100, **kw) -> MarketCreated:
    return MarketCreated(
        market_id=market_id,
        creator=kw.pop("creator", CREATOR),
        question=kw.pop("question", "Q?"),
        end_time=kw.pop("end_time", 1735689600),
        category=kw.pop("category", "Crypto"),
        oracle_type=kw.pop("oracle_type", 0),
        meta=kw.pop("meta", meta(block, tx=f"0xc{market_id:x}{block:x}")),
    )


def prediction_placed(
    market_id: int = 7,
    outcome: int = 0,
    amount: int = 10 * ONE_ETHER,
    block: int = 101,
    tx: str = "0xabc1",
    log_index: int = 0,
    user: str = BETTOR,
) -> PredictionPlaced:
    return PredictionPlaced(
        market_id=market_id,
        user=user,
        outcome=outcome,
        amount=amount,
        meta=meta(block, tx=tx, log_index=log_index),
    )


def market_resolved(
    market_id: int = 7,
    winning: int = 0,
    block: int = 200,
    tx: str = "0xdef1",
    resolution_time: int = 1735700000,
) -> MarketResolved:
    return MarketResolved(
        market_id=market_id,
        winning_outcome=winning,
        resolution_time=resolution_time,
        meta=meta(block, tx=tx),
    )


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def source():
    return FakeEventSource()


@pytest.fixture
def projector(temp_db, source):
    return EventProjector(temp_db, source)
