"""API server command."""

import typer

from oraclex.api.main import run_api

app = typer.Typer(help="Start the read-only HTTP API")


@app.callback(invoke_without_command=True)
def api(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind host"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    with_sync: bool = typer.Option(
        False, "--with-sync", help="Run the chain sync service in the same process",
    ),
) -> None:
    if ctx.invoked_subcommand is not None:
        return
    run_api(ctx.obj["settings"], host=host, port=port, with_sync=with_sync)


if __name__ == "__main__":
    app()
