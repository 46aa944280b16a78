"""Sync subcommand: start, backfill, status."""

from __future__ import annotations

import asyncio
import signal
import sys

import typer

from oraclex.errors import ConfigurationError
from oraclex.ingestion.manager import SyncService
from oraclex.storage.analytics import table_counts
from oraclex.storage.db import get_connection, init_schema

app = typer.Typer(help="Mirror contract events: live sync, one-shot backfill, status")


def _build_service(settings) -> SyncService:
    try:
        return SyncService(settings)
    except ConfigurationError as e:
        typer.echo(f"Sync disabled: {e}. Set MARKET_FACTORY_ADDRESS or chain.contract_address.")
        raise typer.Exit(1)


@app.command("start")
def start(
    ctx: typer.Context,
    historical: bool | None = typer.Option(
        None, "--historical/--no-historical", help="Backfill before listening (overrides config)"
    ),
) -> None:
    """Connect, optionally backfill, then listen for new events until Ctrl+C."""
    settings = ctx.obj["settings"]
    if historical is not None:
        settings.sync["historical_sync"] = historical
    service = _build_service(settings)
    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo("Starting sync (Ctrl+C to stop)...")
        loop.run_until_complete(service.run(stop_event=stop_event))
    except KeyboardInterrupt:
        pass
    finally:
        status = service.get_status()
        service.close()
        loop.close()
    if not status["enabled"]:
        typer.echo(f"Sync disabled: {status['disabled_reason']}")
        raise typer.Exit(1)
    typer.echo("Stopped.")


@app.command("backfill")
def backfill(
    ctx: typer.Context,
    from_block: int | None = typer.Option(None, "--from-block", help="First block (default: resume point)"),
    to_block: int | None = typer.Option(None, "--to-block", help="Last block (default: chain head)"),
) -> None:
    """One-shot historical sync of all tracked events."""
    settings = ctx.obj["settings"]
    service = _build_service(settings)

    async def _run():
        if not await service.connect():
            return None
        return await service.backfill(from_block=from_block, to_block=to_block)

    try:
        result = asyncio.run(_run())
    finally:
        service.close()
    if result is None:
        typer.echo(f"Sync disabled: {service.disabled_reason}")
        raise typer.Exit(1)
    history = result.history
    typer.echo(f"Blocks {history.from_block} - {history.to_block} in {history.windows} windows")
    typer.echo(f"Events found: {len(history.events)}")
    if history.failed_windows:
        typer.echo(f"Failed windows (gaps): {len(history.failed_windows)}")
        for start, end in history.failed_windows:
            typer.echo(f"  {start} - {end}")
    for name, count in result.results.items():
        typer.echo(f"  {name}: {count}")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show mirrored row counts."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        counts = table_counts(conn)
        typer.echo(f"Database: {settings.db_path}")
        typer.echo(f"Contract: {settings.contract_address or '(not configured)'}")
        for table, count in counts.items():
            typer.echo(f"  {table}: {count}")
    finally:
        conn.close()
