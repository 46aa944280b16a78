"""Mirrored rows - User, Market, Outcome, Prediction, Resolution."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class MarketStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"


class User(BaseModel):
    id: int
    wallet_address: str
    created_at: int  # ms epoch


class Outcome(BaseModel):
    """One possible result of a market. outcome_index is the on-chain index."""

    id: int
    market_id: int
    outcome_index: int
    name: str
    probability: float = Field(..., ge=0, le=1)
    total_staked: float = 0.0
    is_winning: bool = False


class Market(BaseModel):
    id: int
    external_id: str
    title: str
    description: str | None = None
    category: str
    oracle_type: int = 0
    end_time: int  # ms epoch
    status: MarketStatus = MarketStatus.ACTIVE
    winning_outcome: str | None = None
    total_staked: float = 0.0
    total_volume: float = 0.0
    chain_total_staked: float | None = None
    creator_id: int
    created_block: int | None = None
    created_at: int  # ms epoch
    resolved_at: int | None = None  # ms epoch
    outcomes: list[Outcome] = Field(default_factory=list)


class Prediction(BaseModel):
    id: int
    user_id: int
    market_id: int
    outcome_id: int
    amount: float
    odds: float
    potential_payout: float
    tx_hash: str
    log_index: int
    block_number: int | None = None
    status: str = "ACTIVE"
    created_at: int


class Resolution(BaseModel):
    id: int
    market_id: int
    resolved_by: str
    outcome: str
    confidence: float
    human_verified: bool
    status: str
    created_at: int
