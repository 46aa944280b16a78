"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, db_error")


# --- Sync ---
class SyncStatusResponse(BaseModel):
    enabled: bool
    running: bool = False
    disabled_reason: str | None = None
    network: dict[str, Any] | None = None
    last_block: int | None = None
    events_received: int = 0
    listener_errors: int = 0
    queue_depth: int = 0
    projections: dict[str, dict[str, int]] = Field(default_factory=dict)
    elapsed_sec: float = 0.0


# --- Analytics ---
class AnalyticsOverview(BaseModel):
    total_markets: int
    active_markets: int
    resolved_markets: int
    total_users: int
    active_users: int = Field(..., description="Distinct predictors in the last 30 days")
    total_volume: float
    volume_24h: float
    avg_market_duration: float = Field(..., description="Days from creation to resolution")
    resolution_accuracy: float = Field(..., description="Mean resolution confidence")
    dispute_rate: float = Field(..., description="Share of resolutions not human-verified")
    timestamp: str
