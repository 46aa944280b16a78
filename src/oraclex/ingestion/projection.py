"""Event projection: one decoded contract event -> one idempotent DB mutation.

Handlers never raise. Unknown markets and bad outcome indexes are logged and
dropped, replays of already-mirrored events are no-ops, and any unexpected
error is logged and the event is dropped (no retry, no dead letter).
"""

from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from web3 import Web3

from oraclex.ingestion.base import EventSource
from oraclex.models import ChainEvent, MarketCreated, MarketResolved, MarketStatus, PredictionPlaced
from oraclex.storage.db import now_ms, transaction
from oraclex.storage.markets import (
    find_market_id,
    get_market,
    increment_stake,
    insert_market,
    insert_outcomes,
    mark_market_resolved,
    mark_outcome_winning,
)
from oraclex.storage.predictions import insert_prediction, prediction_exists
from oraclex.storage.resolutions import insert_resolution
from oraclex.storage.users import get_or_create_user

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

UNCATEGORIZED = "Uncategorized"


class ProjectionResult(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


def wei_to_ether(amount: int) -> float:
    return float(Web3.from_wei(amount, "ether"))


class EventProjector:
    """Applies chain events to the mirror tables on one DuckDB connection.

    Each handler does its reads (including the getMarket contract call) first and
    then writes inside a single transaction with no await in between, so concurrent
    handlers never interleave statements of different transactions.
    """

    def __init__(self, conn: DuckDBPyConnection, source: EventSource) -> None:
        self.conn = conn
        self.source = source
        self.stats: Counter[tuple[str, str]] = Counter()
        self._handlers = {
            "MarketCreated": self._on_market_created,
            "PredictionPlaced": self._on_prediction_placed,
            "MarketResolved": self._on_market_resolved,
        }

    async def apply(self, event: ChainEvent) -> ProjectionResult:
        try:
            result = await self._handlers[event.name](event)
        except Exception:
            log.exception(
                "projection_failed",
                event=event.name,
                market_id=event.external_id,
                tx_hash=event.meta.tx_hash,
                log_index=event.meta.log_index,
            )
            result = ProjectionResult.FAILED
        self.stats[(event.name, result.value)] += 1
        return result

    def summary(self) -> dict[str, dict[str, int]]:
        """Result counts per event name, e.g. {"MarketCreated": {"applied": 3}}."""
        out: dict[str, dict[str, int]] = {}
        for (name, result), count in sorted(self.stats.items()):
            out.setdefault(name, {})[result] = count
        return out

    async def _block_time_ms(self, event: ChainEvent) -> int:
        """Chain time of the event's block in ms; mirror time if the block cannot be read."""
        try:
            return await self.source.get_block_timestamp(event.meta.block_number) * 1000
        except Exception as e:
            log.warning("block_timestamp_unavailable", block=event.meta.block_number, error=str(e))
            return now_ms()

    async def _on_market_created(self, event: MarketCreated) -> ProjectionResult:
        external_id = event.external_id
        if find_market_id(self.conn, external_id) is not None:
            log.info("market_exists", market_id=external_id)
            return ProjectionResult.DUPLICATE

        details = await self.source.get_market(event.market_id)
        created_at = await self._block_time_ms(event)

        with transaction(self.conn):
            # Another handler may have inserted it while getMarket was in flight.
            if find_market_id(self.conn, external_id) is not None:
                log.info("market_exists", market_id=external_id)
                return ProjectionResult.DUPLICATE
            creator_id = get_or_create_user(self.conn, event.creator)
            market_id = insert_market(
                self.conn,
                external_id=external_id,
                title=event.question,
                description=event.question,
                category=event.category or details.category or UNCATEGORIZED,
                oracle_type=event.oracle_type,
                end_time=event.end_time * 1000,
                creator_id=creator_id,
                chain_total_staked=wei_to_ether(details.total_staked),
                created_block=event.meta.block_number,
                created_at=created_at,
            )
            insert_outcomes(self.conn, market_id)

        log.info("market_created", market_id=external_id, row_id=market_id, creator=event.creator)
        return ProjectionResult.APPLIED

    async def _on_prediction_placed(self, event: PredictionPlaced) -> ProjectionResult:
        external_id = event.external_id
        market = get_market(self.conn, external_id)
        if market is None:
            log.warning("market_not_found", event=event.name, market_id=external_id)
            return ProjectionResult.SKIPPED
        if prediction_exists(self.conn, event.meta.tx_hash, event.meta.log_index):
            log.info(
                "prediction_exists",
                market_id=external_id,
                tx_hash=event.meta.tx_hash,
                log_index=event.meta.log_index,
            )
            return ProjectionResult.DUPLICATE
        if not 0 <= event.outcome < len(market.outcomes):
            log.warning(
                "invalid_outcome_index",
                event=event.name,
                market_id=external_id,
                outcome=event.outcome,
                outcome_count=len(market.outcomes),
            )
            return ProjectionResult.SKIPPED

        outcome = market.outcomes[event.outcome]
        amount = wei_to_ether(event.amount)
        created_at = await self._block_time_ms(event)
        with transaction(self.conn):
            user_id = get_or_create_user(self.conn, event.user)
            prediction_id = insert_prediction(
                self.conn,
                user_id=user_id,
                market_id=market.id,
                outcome_id=outcome.id,
                amount=amount,
                odds=outcome.probability,
                tx_hash=event.meta.tx_hash,
                log_index=event.meta.log_index,
                block_number=event.meta.block_number,
                created_at=created_at,
            )
            increment_stake(self.conn, market.id, outcome.id, amount)

        log.info(
            "prediction_saved",
            market_id=external_id,
            row_id=prediction_id,
            user=event.user,
            outcome=outcome.name,
            amount=amount,
        )
        return ProjectionResult.APPLIED

    async def _on_market_resolved(self, event: MarketResolved) -> ProjectionResult:
        external_id = event.external_id
        market = get_market(self.conn, external_id)
        if market is None:
            log.warning("market_not_found", event=event.name, market_id=external_id)
            return ProjectionResult.SKIPPED
        if market.status == MarketStatus.RESOLVED:
            log.warning("market_already_resolved", market_id=external_id, winner=market.winning_outcome)
            return ProjectionResult.DUPLICATE
        if not 0 <= event.winning_outcome < len(market.outcomes):
            log.warning(
                "invalid_outcome_index",
                event=event.name,
                market_id=external_id,
                outcome=event.winning_outcome,
                outcome_count=len(market.outcomes),
            )
            return ProjectionResult.SKIPPED

        outcome = market.outcomes[event.winning_outcome]
        resolved_at = event.resolution_time * 1000
        with transaction(self.conn):
            mark_market_resolved(self.conn, market.id, outcome.name, resolved_at)
            mark_outcome_winning(self.conn, outcome.id)
            insert_resolution(self.conn, market.id, outcome.name, created_at=resolved_at)

        log.info("market_resolved", market_id=external_id, winner=outcome.name)
        return ProjectionResult.APPLIED


def describe(event: ChainEvent) -> dict[str, Any]:
    """Compact log context for an event."""
    return {
        "event": event.name,
        "market_id": event.external_id,
        "block": event.meta.block_number,
        "tx_hash": event.meta.tx_hash,
    }
