"""Decoded contract events and contract reads."""

from __future__ import annotations

from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, field_validator


class EventMeta(BaseModel):
    """Where a log came from on chain."""

    block_number: int
    tx_hash: str
    log_index: int

    @field_validator("tx_hash")
    @classmethod
    def _lower_hash(cls, v: str) -> str:
        return v.lower()


class _MarketEvent(BaseModel):
    market_id: int = Field(..., ge=0)
    meta: EventMeta

    @property
    def external_id(self) -> str:
        """On-chain market id as the decimal string stored in markets.external_id."""
        return str(self.market_id)

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.meta.block_number, self.meta.log_index)


class MarketCreated(_MarketEvent):
    name: Literal["MarketCreated"] = "MarketCreated"
    creator: str
    question: str
    end_time: int  # seconds
    category: str = ""
    oracle_type: int = 0

    @field_validator("creator")
    @classmethod
    def _lower_creator(cls, v: str) -> str:
        return v.lower()


class PredictionPlaced(_MarketEvent):
    name: Literal["PredictionPlaced"] = "PredictionPlaced"
    user: str
    outcome: int
    amount: int  # wei

    @field_validator("user")
    @classmethod
    def _lower_user(cls, v: str) -> str:
        return v.lower()


class MarketResolved(_MarketEvent):
    name: Literal["MarketResolved"] = "MarketResolved"
    winning_outcome: int
    resolution_time: int  # seconds


ChainEvent = Union[MarketCreated, PredictionPlaced, MarketResolved]


def build_event(name: str, args: Mapping[str, Any], meta: EventMeta) -> ChainEvent:
    """Map decoded ABI args (camelCase, as named in the contract) onto an event model."""
    if name == "MarketCreated":
        return MarketCreated(
            market_id=int(args["marketId"]),
            creator=str(args["creator"]),
            question=str(args["question"]),
            end_time=int(args["endTime"]),
            category=str(args.get("category") or ""),
            oracle_type=int(args.get("oracleType") or 0),
            meta=meta,
        )
    if name == "PredictionPlaced":
        return PredictionPlaced(
            market_id=int(args["marketId"]),
            user=str(args["user"]),
            outcome=int(args["outcome"]),
            amount=int(args["amount"]),
            meta=meta,
        )
    if name == "MarketResolved":
        return MarketResolved(
            market_id=int(args["marketId"]),
            winning_outcome=int(args["winningOutcome"]),
            resolution_time=int(args["resolutionTime"]),
            meta=meta,
        )
    raise ValueError(f"Unknown event: {name}")


class MarketDetails(BaseModel):
    """Result of getMarket(marketId)."""

    question: str
    end_time: int
    resolved: bool
    outcome: int
    total_staked: int  # wei
    creator: str
    category: str = ""

    @classmethod
    def from_tuple(cls, values: tuple | list) -> MarketDetails:
        question, end_time, resolved, outcome, total_staked, creator, category = values
        return cls(
            question=question,
            end_time=int(end_time),
            resolved=bool(resolved),
            outcome=int(outcome),
            total_staked=int(total_staked),
            creator=str(creator).lower(),
            category=category or "",
        )


class NetworkInfo(BaseModel):
    chain_id: int
    name: str
