"""Historical backfill: windowing, gap tolerance, start block and ordered projection."""

import asyncio

from structlog.testing import capture_logs

from conftest import FakeEventSource, market_created, market_resolved, prediction_placed
from oraclex.ingestion.backfill import (
    fetch_history,
    iter_block_windows,
    resolve_start_block,
    run_backfill,
)
from oraclex.ingestion.projection import EventProjector
from oraclex.models import MarketStatus
from oraclex.storage.markets import get_market


def test_iter_block_windows_covers_range_without_overlap():
    assert list(iter_block_windows(0, 4500, 2000)) == [(0, 1999), (2000, 3999), (4000, 4500)]
    assert list(iter_block_windows(10, 10, 2000)) == [(10, 10)]
    assert list(iter_block_windows(11, 10, 2000)) == []


def test_fetch_history_queries_each_window_once():
    events = [market_created(1, block=10), market_created(2, block=2500), market_created(3, block=4500)]
    source = FakeEventSource(events)
    history = asyncio.run(fetch_history(source, 0, 4500, window_size=2000, pause_sec=0))
    assert source.log_queries == [(0, 1999), (2000, 3999), (4000, 4500)]
    assert history.windows == 3
    assert history.failed_windows == []
    assert [e.market_id for e in history.events] == [1, 2, 3]


def test_failed_window_leaves_gap_and_continues():
    events = [market_created(1, block=10), market_created(2, block=2500), market_created(3, block=4500)]
    source = FakeEventSource(events, fail_windows={(2000, 3999)})
    with capture_logs() as logs:
        history = asyncio.run(fetch_history(source, 0, 4500, window_size=2000, pause_sec=0))
    assert len(source.log_queries) == 3
    assert history.failed_windows == [(2000, 3999)]
    assert [e.market_id for e in history.events] == [1, 3]
    assert [e["event"] for e in logs if e["log_level"] == "warning"] == ["backfill_window_failed"]


def test_start_block_on_fresh_mirror_uses_lookback(temp_db):
    source = FakeEventSource()
    start = asyncio.run(resolve_start_block(temp_db, source, current_block=50_000, lookback_blocks=10_000))
    assert start == 40_000
    start = asyncio.run(
        resolve_start_block(temp_db, source, current_block=50_000, deployment_block=45_000, lookback_blocks=10_000)
    )
    assert start == 45_000
    start = asyncio.run(resolve_start_block(temp_db, source, current_block=500, lookback_blocks=10_000))
    assert start == 0


def test_start_block_resumes_near_newest_market(temp_db, projector):
    asyncio.run(projector.apply(market_created(7)))
    # Pretend the market was mirrored five minutes before the head block.
    source = FakeEventSource(head=5000, head_timestamp=1_700_000_000)
    temp_db.execute("UPDATE markets SET created_at = ?", [(1_700_000_000 - 300) * 1000])
    start = asyncio.run(resolve_start_block(temp_db, source, current_block=5000))
    assert start == 4900


def test_start_block_falls_back_when_estimate_fails(temp_db, projector):
    asyncio.run(projector.apply(market_created(7)))

    class BrokenHead(FakeEventSource):
        async def get_latest_block_header(self):
            raise ConnectionError("rpc down")

    with capture_logs() as logs:
        start = asyncio.run(
            resolve_start_block(temp_db, BrokenHead(), current_block=50_000, lookback_blocks=10_000)
        )
    assert start == 40_000
    assert any(e["event"] == "block_estimate_failed" for e in logs)


def test_run_backfill_projects_in_chain_order(temp_db):
    # Returned out of order; the prediction must not be dropped as "market not found".
    events = [
        market_resolved(7, block=300),
        prediction_placed(7, block=200, amount=4 * 10**18),
        market_created(7, block=100),
    ]
    source = FakeEventSource(events)
    projector = EventProjector(temp_db, source)
    result = asyncio.run(run_backfill(source, projector, 0, 1000, pause_sec=0))
    assert result.results["applied"] == 3
    assert result.results["skipped"] == 0
    market = get_market(temp_db, "7")
    assert market.status == MarketStatus.RESOLVED
    assert market.total_staked == 4.0


def test_backfill_is_idempotent_when_rerun(temp_db):
    events = [market_created(7, block=100), prediction_placed(7, block=150)]
    source = FakeEventSource(events)
    projector = EventProjector(temp_db, source)
    asyncio.run(run_backfill(source, projector, 0, 1000, pause_sec=0))
    second = asyncio.run(run_backfill(source, projector, 0, 1000, pause_sec=0))
    assert second.results["duplicate"] == 2
    assert get_market(temp_db, "7").total_staked == 10.0
