"""Aggregate queries over the mirrored tables."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from oraclex.storage.db import now_ms

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

_DAY_MS = 24 * 60 * 60 * 1000


def table_counts(conn: DuckDBPyConnection) -> dict[str, int]:
    """Row counts per mirrored table."""
    counts = {}
    for table in ("users", "markets", "outcomes", "predictions", "resolutions"):
        counts[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    return counts


def analytics_overview(conn: DuckDBPyConnection, now: int | None = None) -> dict[str, Any]:
    """Platform overview: market/user counts, volumes, duration and resolution quality."""
    now = now if now is not None else now_ms()
    total_markets, active_markets, resolved_markets, total_volume = conn.execute(
        """
        SELECT COUNT(*),
               COUNT(*) FILTER (WHERE status = 'ACTIVE'),
               COUNT(*) FILTER (WHERE status = 'RESOLVED'),
               COALESCE(SUM(total_volume), 0)
        FROM markets
        """
    ).fetchone()
    total_users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
    volume_24h = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) FROM predictions WHERE created_at >= ?",
        [now - _DAY_MS],
    ).fetchone()[0]
    active_users = conn.execute(
        "SELECT COUNT(DISTINCT user_id) FROM predictions WHERE created_at >= ?",
        [now - 30 * _DAY_MS],
    ).fetchone()[0]
    avg_duration_ms = conn.execute(
        """
        SELECT AVG(resolved_at - created_at) FROM markets
        WHERE status = 'RESOLVED' AND resolved_at IS NOT NULL
        """
    ).fetchone()[0]
    accuracy, dispute_rate = conn.execute(
        """
        SELECT AVG(confidence),
               AVG(CASE WHEN human_verified THEN 0.0 ELSE 1.0 END)
        FROM resolutions
        """
    ).fetchone()
    return {
        "total_markets": total_markets,
        "active_markets": active_markets,
        "resolved_markets": resolved_markets,
        "total_users": total_users,
        "active_users": active_users,
        "total_volume": float(total_volume),
        "volume_24h": float(volume_24h),
        "avg_market_duration": round(float(avg_duration_ms) / _DAY_MS, 2) if avg_duration_ms is not None else 0.0,
        "resolution_accuracy": round(float(accuracy), 4) if accuracy is not None else 0.0,
        "dispute_rate": round(float(dispute_rate), 4) if dispute_rate is not None else 0.0,
        "timestamp": datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat(),
    }
