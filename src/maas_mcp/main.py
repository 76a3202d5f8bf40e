# src/maas_mcp/main.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""
Application Entry (Adapters Bootstrap)

Synopsis:
    Wires settings, the MAAS backend, the capability registry and the MCP
    dispatcher, then serves them over HTTP (FastAPI + uvicorn) or stdio.

Design:
    • Bootstrap only (no MCP logic): registry + dispatcher + transports.
    • `create_app` is a factory; the dispatcher is built eagerly and stored
      on ``app.state`` so the app works with or without a lifespan context.
    • The MAAS client is closed on shutdown when this module created it.
    • Logging always goes to stderr; stdout belongs to the stdio protocol.

CLI:
    maas-mcp [http|stdio] [--host HOST] [--port PORT]

    The mode defaults to ``MCP_TRANSPORT``. Invalid configuration exits 2.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import typer
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from maas_mcp.adapters.routers.health_router import router as health_router
from maas_mcp.adapters.routers.mcp_router import router as mcp_router
from maas_mcp.adapters.routers.metrics_router import router as metrics_router
from maas_mcp.config.settings import Settings, TransportMode, get_settings
from maas_mcp.domain.interfaces.backend import BackendClient
from maas_mcp.infrastructure.external_apis.maas.client import MaasClient
from maas_mcp.infrastructure.http.errors import (
    handle_http_exception,
    handle_unhandled_exception,
    handle_validation_error,
)
from maas_mcp.infrastructure.logging.logger import configure_root_logging, get_json_logger
from maas_mcp.infrastructure.middleware.access_log import AccessLogMiddleware
from maas_mcp.infrastructure.middleware.correlation_id import CorrelationIdMiddleware
from maas_mcp.infrastructure.middleware.metrics import PromMetricsMiddleware
from maas_mcp.mcp.capabilities.catalog import register_default_capabilities
from maas_mcp.mcp.dispatcher import Dispatcher
from maas_mcp.mcp.registry import Registry
from maas_mcp.mcp.transports.stdio import StdioServer

logger = get_json_logger(__name__)

EXIT_CONFIG_ERROR = 2


def build_dispatcher(
    settings: Settings,
    backend: BackendClient,
    *,
    registry: Registry | None = None,
) -> Dispatcher:
    """Register the default capabilities and return a dispatcher over them.

    Args:
        settings: Runtime settings (server identity, strictness).
        backend: MAAS backend the tool handlers call.
        registry: Optional pre-populated registry; defaults are added to it.
    """
    registry = register_default_capabilities(registry or Registry(), backend)
    return Dispatcher(
        registry,
        server_name=settings.service_name,
        server_version=settings.service_version,
        strict=settings.mcp_strict_jsonrpc,
    )


# -----------------------------------------------------------------------------
# Middleware & error handlers
# -----------------------------------------------------------------------------
def _attach_middlewares(app: FastAPI, settings: Settings) -> None:
    """Attach middleware. The last one added runs first.

    Effective order on a request:

        1. CORSMiddleware
        2. CorrelationIdMiddleware (correlation id on contextvars + response)
        3. AccessLogMiddleware
        4. PromMetricsMiddleware (when metrics are enabled)
    """
    if settings.metrics_enabled:
        app.add_middleware(PromMetricsMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins or ["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )


def _patch_exception_handlers(app: FastAPI) -> None:
    """Replace the default exception handlers with JSON-RPC-shaped ones."""

    async def _http_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, StarletteHTTPException):
            raise exc
        return await handle_http_exception(request, exc)

    async def _validation_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        if not isinstance(exc, RequestValidationError):
            raise exc
        return await handle_validation_error(request, exc)

    async def _unhandled_error_handler(request: Request, exc: Exception) -> StarletteResponse:
        return await handle_unhandled_exception(request, exc)

    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app(
    settings: Settings | None = None,
    *,
    backend: BackendClient | None = None,
    registry: Registry | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Runtime settings; loaded from the environment when omitted.
        backend: MAAS backend; a :class:`MaasClient` is created when omitted.
        registry: Optional registry to extend with the default capabilities.

    Returns:
        FastAPI: Fully configured application instance.
    """
    settings = settings or get_settings()
    owned_client: MaasClient | None = None
    if backend is None:
        owned_client = MaasClient(settings)
        backend = owned_client

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        try:
            yield
        finally:
            if owned_client is not None:
                await owned_client.aclose()
            logger.info("service_shutdown", extra={"service": settings.service_name})

    app = FastAPI(
        title="MAAS MCP Server",
        version=settings.service_version,
        description="Model Context Protocol bridge to Canonical MAAS.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.dispatcher = build_dispatcher(settings, backend, registry=registry)

    _patch_exception_handlers(app)
    _attach_middlewares(app, settings)

    app.include_router(health_router)
    app.include_router(mcp_router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)

    logger.info(
        "service_startup",
        extra={
            "service": settings.service_name,
            "env": settings.environment.value,
            "version": settings.service_version,
            "maas_base_url": settings.maas_base_url(),
        },
    )
    return app


# -----------------------------------------------------------------------------
# Stdio
# -----------------------------------------------------------------------------
async def serve_stdio(settings: Settings, backend: BackendClient | None = None) -> int:
    """Run the stdio transport until SIGINT/SIGTERM (or EOF if configured)."""
    client: MaasClient | None = None
    if backend is None:
        client = MaasClient(settings)
        backend = client
    try:
        dispatcher = build_dispatcher(settings, backend)
        server = StdioServer(
            dispatcher,
            server_name=settings.service_name,
            server_version=settings.service_version,
            handshake_mode=settings.mcp_handshake_mode,
            settle_s=settings.mcp_stdio_settle_ms / 1000.0,
            exit_on_eof=settings.mcp_stdio_exit_on_eof,
        )
        return await server.run()
    finally:
        if client is not None:
            await client.aclose()


# -----------------------------------------------------------------------------
# CLI
# -----------------------------------------------------------------------------
cli = typer.Typer(add_completion=False, help="MCP server for Canonical MAAS.")


def run(mode: TransportMode | None = None, host: str | None = None, port: int | None = None) -> int:
    """Load settings and serve the selected transport. Returns the exit code."""
    configure_root_logging(stream=sys.stderr)

    try:
        settings = get_settings()
    except RuntimeError as exc:
        logger.error("startup_failed", extra={"error": str(exc)})
        return EXIT_CONFIG_ERROR

    mode = mode or settings.mcp_transport
    if mode is TransportMode.STDIO:
        return asyncio.run(serve_stdio(settings))

    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.mcp_host,
        port=port or settings.mcp_port,
        log_config=None,
    )
    return 0


@cli.command()
def serve(
    mode: TransportMode | None = typer.Argument(  # noqa: B008
        None, help="Transport to serve (default: MCP_TRANSPORT)."
    ),
    host: str | None = typer.Option(None, help="HTTP bind address (default: MCP_HOST)."),  # noqa: B008
    port: int | None = typer.Option(  # noqa: B008
        None, min=1, max=65535, help="HTTP port (default: MCP_PORT)."
    ),
) -> None:
    """Serve MCP over HTTP or stdio."""
    code = run(mode, host, port)
    if code:
        raise typer.Exit(code)


def main() -> None:
    """Console entry point."""
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
