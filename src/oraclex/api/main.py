"""FastAPI backend - health, sync status and analytics over the mirrored tables."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import duckdb
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oraclex import __version__
from oraclex.api.schemas import AnalyticsOverview, ErrorResponse, HealthResponse, SyncStatusResponse
from oraclex.config import Settings, get_settings
from oraclex.errors import ConfigurationError
from oraclex.ingestion.manager import SyncService
from oraclex.storage.analytics import analytics_overview
from oraclex.storage.db import get_connection, init_schema

log = structlog.get_logger(__name__)


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _get_conn(request: Request):
    service: SyncService | None = request.app.state.sync_service
    if service is not None:
        # Same process as the writer: share its database instance.
        return service.conn.cursor()
    settings: Settings = request.app.state.settings
    return get_connection(settings.db_path, read_only=True)


def create_app(settings: Settings | None = None, with_sync: bool = False) -> FastAPI:
    """Build the API. With with_sync the chain sync service runs inside the app lifespan."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Ensure schema exists before read-only connections are opened
        conn = get_connection(settings.db_path, read_only=False)
        try:
            init_schema(conn)
        finally:
            conn.close()

        service = None
        start_task = None
        if with_sync:
            try:
                service = SyncService(settings)
            except ConfigurationError as e:
                log.warning("sync_disabled", reason="configuration", error=str(e))
            else:
                # Backfill can take a while; keep serving HTTP meanwhile.
                start_task = asyncio.create_task(service.start())
        app.state.sync_service = service

        yield

        if service is not None:
            if start_task is not None:
                if not start_task.done():
                    start_task.cancel()
                await asyncio.gather(start_task, return_exceptions=True)
            await service.stop()
            service.close()

    app = FastAPI(title="OracleX Sync API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.sync_service = None
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/sync/status", response_model=SyncStatusResponse)
    def sync_status(request: Request) -> SyncStatusResponse:
        service: SyncService | None = request.app.state.sync_service
        if service is None:
            return SyncStatusResponse(enabled=False, disabled_reason="sync not running in this process")
        return SyncStatusResponse(**service.get_status())

    @app.get(
        "/analytics/overview",
        response_model=AnalyticsOverview,
        responses={500: {"description": "Database error", "model": ErrorResponse}},
    )
    def overview(request: Request):
        """Platform analytics computed from the mirrored tables."""
        try:
            conn = _get_conn(request)
        except duckdb.Error as e:
            log.error("analytics_db_error", error=str(e))
            return _error_json("db_error", "Failed to fetch analytics overview", status_code=500)
        try:
            return AnalyticsOverview(**analytics_overview(conn))
        finally:
            conn.close()

    return app


def run_api(
    settings: Settings | None = None,
    host: str = "127.0.0.1",
    port: int = 8000,
    with_sync: bool = False,
) -> None:
    import uvicorn

    uvicorn.run(create_app(settings, with_sync=with_sync), host=host, port=port, reload=False)
