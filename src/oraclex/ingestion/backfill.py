"""Historical backfill - chunked log queries from a start block to the chain head."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator

import structlog

from oraclex.ingestion.base import EventSource
from oraclex.ingestion.projection import EventProjector, ProjectionResult
from oraclex.models import ChainEvent
from oraclex.storage.markets import latest_market_created_at

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

# Blocks per eth_getLogs query; public BSC endpoints reject much larger ranges.
BLOCK_WINDOW_SIZE = 2000
# Pause between window queries to stay under provider rate limits.
WINDOW_PAUSE_SEC = 0.1
# Without markets or a deployment block, only look this far back from the head.
DEFAULT_LOOKBACK_BLOCKS = 10_000


def iter_block_windows(from_block: int, to_block: int, size: int = BLOCK_WINDOW_SIZE) -> Iterator[tuple[int, int]]:
    """Yield contiguous inclusive (start, end) windows covering [from_block, to_block]."""
    if size <= 0:
        raise ValueError("window size must be positive")
    start = from_block
    while start <= to_block:
        end = min(start + size - 1, to_block)
        yield start, end
        start = end + 1


@dataclass
class HistoryResult:
    """Events found in [from_block, to_block] plus the windows that failed (gaps)."""

    from_block: int
    to_block: int
    events: list[ChainEvent] = field(default_factory=list)
    windows: int = 0
    failed_windows: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class BackfillResult:
    history: HistoryResult
    results: dict[str, int] = field(default_factory=dict)


async def fetch_history(
    source: EventSource,
    from_block: int,
    to_block: int,
    *,
    window_size: int = BLOCK_WINDOW_SIZE,
    pause_sec: float = WINDOW_PAUSE_SEC,
) -> HistoryResult:
    """Query each window in turn. A failing window is logged and skipped, leaving a gap."""
    result = HistoryResult(from_block=from_block, to_block=to_block)
    chunked = to_block - from_block > window_size
    if chunked:
        log.info("backfill_chunked", from_block=from_block, to_block=to_block, window_size=window_size)
    for start, end in iter_block_windows(from_block, to_block, window_size):
        result.windows += 1
        try:
            events = await source.get_logs(start, end)
        except Exception as e:
            log.warning("backfill_window_failed", start=start, end=end, error=str(e))
            result.failed_windows.append((start, end))
        else:
            result.events.extend(events)
            if chunked:
                log.info("backfill_window", start=start, end=end, events=len(events))
        if pause_sec > 0 and end < to_block:
            await asyncio.sleep(pause_sec)
    return result


async def resolve_start_block(
    conn: DuckDBPyConnection,
    source: EventSource,
    *,
    current_block: int,
    deployment_block: int = 0,
    lookback_blocks: int = DEFAULT_LOOKBACK_BLOCKS,
) -> int:
    """Pick the first block to scan.

    Resume near the newest mirrored market (its created_at mapped to a block by the
    block-time heuristic); otherwise start at the deployment block but no more than
    lookback_blocks behind the head. On a fresh mirror with no deployment block
    configured this window is arbitrary and older events are missed.
    """
    fallback = max(deployment_block, current_block - lookback_blocks, 0)
    latest_ms = latest_market_created_at(conn)
    if latest_ms is None:
        return fallback
    try:
        return await source.get_block_by_approx_timestamp(latest_ms // 1000)
    except Exception as e:
        log.error("block_estimate_failed", error=str(e), fallback=fallback)
        return fallback


async def run_backfill(
    source: EventSource,
    projector: EventProjector,
    from_block: int,
    to_block: int,
    *,
    window_size: int = BLOCK_WINDOW_SIZE,
    pause_sec: float = WINDOW_PAUSE_SEC,
) -> BackfillResult:
    """Fetch history, then project it serially in chain order."""
    log.info("backfill_started", from_block=from_block, to_block=to_block)
    history = await fetch_history(
        source, from_block, to_block, window_size=window_size, pause_sec=pause_sec
    )
    results = {r.value: 0 for r in ProjectionResult}
    for event in sorted(history.events, key=lambda e: e.sort_key):
        outcome = await projector.apply(event)
        results[outcome.value] += 1
    log.info(
        "backfill_completed",
        events=len(history.events),
        windows=history.windows,
        failed_windows=len(history.failed_windows),
        **results,
    )
    return BackfillResult(history=history, results=results)
