"""Sync orchestrator - connect, backfill, listen and project into DuckDB."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

import structlog

from oraclex.config.settings import Settings
from oraclex.errors import ChainConnectionError
from oraclex.ingestion.backfill import (
    BLOCK_WINDOW_SIZE,
    WINDOW_PAUSE_SEC,
    BackfillResult,
    resolve_start_block,
    run_backfill,
)
from oraclex.ingestion.base import EventSource
from oraclex.ingestion.contract import Web3EventSource
from oraclex.ingestion.listener import LiveListener
from oraclex.ingestion.projection import EventProjector
from oraclex.models import ChainEvent, NetworkInfo
from oraclex.storage.db import get_connection, init_schema

log = structlog.get_logger(__name__)


class SyncService:
    """Mirrors market factory events into DuckDB.

    Constructed and owned by the process entry point (CLI command or API lifespan).
    Building one without a contract address raises ConfigurationError; callers catch
    it and carry on without sync. A failed connect() disables the instance for the
    rest of the process; there is no reconnect loop.
    """

    def __init__(
        self,
        settings: Settings,
        source: EventSource | None = None,
        *,
        db_path: str | Path | None = None,
        window_pause_sec: float = WINDOW_PAUSE_SEC,
    ):
        self.settings = settings
        self.source = source if source is not None else Web3EventSource.from_settings(settings)
        self.db_path = Path(db_path or settings.db_path)
        self.window_pause_sec = window_pause_sec
        self.network: NetworkInfo | None = None
        self.disabled_reason: str | None = None
        self.last_backfill: BackfillResult | None = None
        self._conn = None
        self._projector: EventProjector | None = None
        self._queue: asyncio.Queue[ChainEvent] | None = None
        self._workers: list[asyncio.Task] = []
        self._listener: LiveListener | None = None
        self._listener_task: asyncio.Task | None = None
        self._listener_stop: asyncio.Event | None = None
        self._running = False
        self._start_ts: float | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def conn(self):
        if self._conn is None:
            self._conn = get_connection(self.db_path)
            init_schema(self._conn)
        return self._conn

    @property
    def projector(self) -> EventProjector:
        if self._projector is None:
            self._projector = EventProjector(self.conn, self.source)
        return self._projector

    async def connect(self) -> bool:
        """Check the endpoint once. On failure log, disable sync and return False."""
        if self.disabled_reason is not None:
            return False
        try:
            self.network = await self.source.connect()
        except ChainConnectionError as e:
            self.disabled_reason = str(e)
            log.error("chain_connect_failed", error=str(e))
            log.warning("sync_disabled", reason="network")
            return False
        log.info("chain_connected", network=self.network.name, chain_id=self.network.chain_id)
        return True

    async def backfill(self, from_block: int | None = None, to_block: int | None = None) -> BackfillResult:
        """One historical pass from the resolved start block to the head (or to_block)."""
        head = to_block if to_block is not None else await self.source.get_latest_block()
        if from_block is None:
            from_block = await resolve_start_block(
                self.conn,
                self.source,
                current_block=head,
                deployment_block=self.settings.deployment_block,
                lookback_blocks=self.settings.lookback_blocks,
            )
        self.last_backfill = await run_backfill(
            self.source,
            self.projector,
            from_block,
            head,
            window_size=BLOCK_WINDOW_SIZE,
            pause_sec=self.window_pause_sec,
        )
        return self.last_backfill

    async def _worker(self, queue: asyncio.Queue[ChainEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.projector.apply(event)
            finally:
                queue.task_done()

    async def start(self) -> bool:
        """Connect, optionally backfill, then start workers and the live listener."""
        if self._running:
            log.warning("sync_already_running")
            return True
        if not await self.connect():
            return False

        listen_from: int | None = None
        if self.settings.historical_sync:
            try:
                result = await self.backfill()
                listen_from = result.history.to_block + 1
            except Exception as e:
                log.error("backfill_error", error=str(e))
        else:
            log.info("historical_sync_disabled", hint="set ENABLE_HISTORICAL_SYNC=true to enable")

        queue: asyncio.Queue[ChainEvent] = asyncio.Queue(maxsize=self.settings.queue_size)
        self._queue = queue
        self._workers = [
            asyncio.create_task(self._worker(queue), name=f"oraclex-projection-{i}")
            for i in range(self.settings.workers)
        ]
        # put() blocks the listener while the queue is full.
        self._listener = LiveListener(
            self.source,
            queue.put,
            poll_interval_sec=self.settings.poll_interval_sec,
            from_block=listen_from,
        )
        self._listener_stop = asyncio.Event()
        self._listener_task = asyncio.create_task(self._listener.run(self._listener_stop), name="oraclex-listener")
        self._running = True
        self._start_ts = time.time()
        log.info("sync_started", workers=len(self._workers), queue_size=self.settings.queue_size)
        return True

    async def stop(self) -> None:
        """Stop listening, drain queued events, stop workers."""
        if not self._running:
            return
        self._running = False
        if self._listener_stop is not None:
            self._listener_stop.set()
        if self._listener_task is not None:
            await self._listener_task
        if self._queue is not None:
            await self._queue.join()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        log.info("sync_stopped")

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run until stop_event is set. Returns at once if sync could not start."""
        stop = stop_event or asyncio.Event()
        if not await self.start():
            return
        try:
            await stop.wait()
        finally:
            await self.stop()

    def get_status(self) -> dict[str, Any]:
        """Current state for CLI and API: enabled, network, listener and projection counts."""
        elapsed = (time.time() - self._start_ts) if self._start_ts else 0
        listener = self._listener
        return {
            "enabled": self.disabled_reason is None,
            "running": self._running,
            "disabled_reason": self.disabled_reason,
            "network": self.network.model_dump() if self.network else None,
            "last_block": listener.last_block if listener else None,
            "events_received": listener.event_count if listener else 0,
            "listener_errors": listener.error_count if listener else 0,
            "queue_depth": self._queue.qsize() if self._queue is not None else 0,
            "projections": self.projector.summary() if self._projector else {},
            "elapsed_sec": round(elapsed, 1),
        }

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._projector = None
