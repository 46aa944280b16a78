"""Canonical schema (Pydantic) - chain events and mirrored rows."""

from oraclex.models.entities import Market, MarketStatus, Outcome, Prediction, Resolution, User
from oraclex.models.events import (
    ChainEvent,
    EventMeta,
    MarketCreated,
    MarketDetails,
    MarketResolved,
    NetworkInfo,
    PredictionPlaced,
    build_event,
)

__all__ = [
    "ChainEvent",
    "EventMeta",
    "MarketCreated",
    "MarketDetails",
    "MarketResolved",
    "NetworkInfo",
    "PredictionPlaced",
    "build_event",
    "Market",
    "MarketStatus",
    "Outcome",
    "Prediction",
    "Resolution",
    "User",
]
