"""Markets subcommand: list, show."""

from __future__ import annotations

import typer

from oraclex.storage.db import get_connection, init_schema
from oraclex.storage.markets import get_market
from oraclex.storage.markets import list_markets as storage_list_markets
from oraclex.storage.predictions import list_predictions
from oraclex.storage.resolutions import get_resolution

app = typer.Typer(help="Inspect mirrored markets")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", "-s", help="ACTIVE or RESOLVED"),
) -> None:
    """List mirrored markets, newest first."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = storage_list_markets(conn, status=status)
        for r in rows:
            title = (r.get("title") or "")[:60]
            typer.echo(f"  {r['external_id']:>8}  {r['status']:<8}  {r['total_staked']:>12.4f}  {title}")
        typer.echo(f"Total: {len(rows)} markets")
    finally:
        conn.close()


@app.command("show")
def show(
    ctx: typer.Context,
    external_id: str = typer.Argument(..., help="On-chain market id"),
    limit: int = typer.Option(10, "--limit", "-n", help="Recent predictions to show"),
) -> None:
    """Show one market with outcomes, recent predictions and resolution."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        market = get_market(conn, external_id)
        if market is None:
            typer.echo(f"Market not found: {external_id}")
            raise typer.Exit(1)
        typer.echo(f"{market.title}  [{market.category}]  {market.status.value}")
        typer.echo(f"Total staked: {market.total_staked:.4f}  volume: {market.total_volume:.4f}")
        for o in market.outcomes:
            flag = "  (winner)" if o.is_winning else ""
            typer.echo(f"  [{o.outcome_index}] {o.name:<6} p={o.probability:.2f}  staked={o.total_staked:.4f}{flag}")
        predictions = list_predictions(conn, market.id, limit=limit)
        if predictions:
            typer.echo("Recent predictions:")
            for p in predictions:
                typer.echo(f"  {p.tx_hash[:18]}...  {p.amount:.4f} @ {p.odds:.2f}  payout {p.potential_payout:.4f}")
        resolution = get_resolution(conn, market.id)
        if resolution is not None:
            typer.echo(f"Resolved by {resolution.resolved_by}: {resolution.outcome} ({resolution.status})")
    finally:
        conn.close()
