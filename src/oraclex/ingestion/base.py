"""Abstract event source for the market factory contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import structlog

from oraclex.models import ChainEvent, MarketDetails, NetworkInfo

log = structlog.get_logger(__name__)

# BSC produces a block roughly every 3 seconds.
AVG_BLOCK_TIME_SEC = 3


def estimate_block_at(
    latest_number: int,
    latest_timestamp: int,
    target_timestamp: int,
    block_time_sec: int = AVG_BLOCK_TIME_SEC,
) -> int:
    """Linear estimate of the block mined near target_timestamp (seconds). May be off by some blocks."""
    blocks_back = (latest_timestamp - target_timestamp) // block_time_sec
    return max(0, min(latest_number, latest_number - blocks_back))


class EventSource(ABC):
    """JSON-RPC view of one contract: reads, historical logs and a polling log filter."""

    @abstractmethod
    async def connect(self) -> NetworkInfo:
        """Check liveness and network identity. Raise ChainConnectionError on failure."""
        ...

    @abstractmethod
    async def get_latest_block(self) -> int:
        ...

    @abstractmethod
    async def get_latest_block_header(self) -> tuple[int, int]:
        """Return (number, timestamp) of the chain head."""
        ...

    @abstractmethod
    async def get_block_timestamp(self, block_number: int) -> int:
        """Timestamp (seconds) of the given block."""
        ...

    @abstractmethod
    async def get_logs(self, from_block: int, to_block: int) -> list[ChainEvent]:
        """Decoded tracked events in [from_block, to_block], both inclusive."""
        ...

    @abstractmethod
    async def get_market(self, market_id: int) -> MarketDetails:
        ...

    @abstractmethod
    async def create_filter(self, from_block: int | None = None) -> Any:
        """Install a log filter for the tracked events; None means from the head."""
        ...

    @abstractmethod
    async def get_filter_changes(self, filter_id: Any) -> list[ChainEvent]:
        ...

    @abstractmethod
    async def uninstall_filter(self, filter_id: Any) -> None:
        ...

    async def get_block_by_approx_timestamp(self, timestamp: int) -> int:
        """Estimate the block height near timestamp (seconds) from the head's time."""
        number, head_ts = await self.get_latest_block_header()
        block = estimate_block_at(number, head_ts, timestamp)
        log.debug("block_estimated", timestamp=timestamp, head=number, block=block)
        return block
