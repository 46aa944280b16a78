"""Live listener - poll a log filter and hand each new event to a sink."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from oraclex.ingestion.backfill import iter_block_windows
from oraclex.ingestion.base import EventSource
from oraclex.ingestion.projection import describe
from oraclex.models import ChainEvent

log = structlog.get_logger(__name__)

# Some providers drop idle filters and then answer with this message.
BENIGN_ERROR_MARKERS = ("filter not found",)


def is_benign_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in BENIGN_ERROR_MARKERS)


class LiveListener:
    """Best-effort subscription to new contract events. Never raises out of run()."""

    def __init__(
        self,
        source: EventSource,
        sink: Callable[[ChainEvent], Awaitable[None]],
        *,
        poll_interval_sec: float = 4.0,
        from_block: int | None = None,
    ) -> None:
        self.source = source
        self.sink = sink
        self.poll_interval_sec = poll_interval_sec
        self.from_block = from_block
        self.last_block: int | None = None
        self.event_count = 0
        self.error_count = 0
        self._filter_id: Any = None
        self._synced_to: int | None = None

    def _resume_block(self) -> int | None:
        # Re-read from the newest block already covered; projections are idempotent so overlap is safe.
        covered = [b for b in (self.last_block, self._synced_to) if b is not None]
        if covered:
            return max(covered)
        return self.from_block

    async def _install(self) -> None:
        """Install a filter, then fetch the logs it will not report.

        eth_getFilterChanges only returns logs mined after the filter exists, so
        blocks from the resume point up to the current head are read with eth_getLogs.
        """
        start = self._resume_block()
        self._filter_id = await self.source.create_filter(start)
        log.debug("filter_installed", filter_id=self._filter_id, from_block=start)
        try:
            head = await self.source.get_latest_block()
            if start is not None and start <= head:
                for window_start, window_end in iter_block_windows(start, head):
                    await self._deliver(await self.source.get_logs(window_start, window_end))
                log.debug("filter_catch_up", from_block=start, to_block=head)
        except Exception:
            await self._uninstall()
            raise
        self._synced_to = head

    async def _deliver(self, events: list[ChainEvent]) -> None:
        for event in sorted(events, key=lambda e: e.sort_key):
            log.info("event_received", **describe(event))
            if self.last_block is None or event.meta.block_number > self.last_block:
                self.last_block = event.meta.block_number
            self.event_count += 1
            await self.sink(event)

    async def _poll_once(self) -> None:
        if self._filter_id is None:
            await self._install()
        try:
            events = await self.source.get_filter_changes(self._filter_id)
        except Exception:
            # The filter may be gone; rebuild it on the next poll.
            self._filter_id = None
            raise
        await self._deliver(events)

    async def _wait(self, stop: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop.wait(), timeout=self.poll_interval_sec)
        except asyncio.TimeoutError:
            pass

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll until stop_event is set or the task is cancelled."""
        stop = stop_event or asyncio.Event()
        log.info("listener_started", from_block=self.from_block, poll_interval_sec=self.poll_interval_sec)
        while not stop.is_set():
            try:
                await self._poll_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                if not is_benign_error(e):
                    self.error_count += 1
                    log.error("listener_error", error=str(e))
            await self._wait(stop)
        await self._uninstall()
        log.info("listener_stopped", events=self.event_count, last_block=self.last_block)

    async def _uninstall(self) -> None:
        if self._filter_id is None:
            return
        filter_id, self._filter_id = self._filter_id, None
        try:
            await self.source.uninstall_filter(filter_id)
        except Exception as e:
            log.debug("filter_uninstall_failed", filter_id=filter_id, error=str(e))
