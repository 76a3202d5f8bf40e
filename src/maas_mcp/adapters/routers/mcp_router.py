# src/maas_mcp/adapters/routers/mcp_router.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""
MCP HTTP Router (Adapters Layer)

Purpose:
    Expose the MCP dispatcher over HTTP:

        GET  /mcp
            Discovery document. Framed as one SSE event when the client sends
            ``Accept: text/event-stream`` or ``?stream=true``.

        GET  /mcp/sse
            Discovery document, always as SSE.

        POST /mcp
            Body: JSON-RPC request, tool call or resource access.
            Reply: the matching response shape.

        POST /mcp/{tool_name}
            Body: tool parameters. Reply: tool-call result.

Status policy:
    Any body that parses as JSON gets HTTP 200, whatever the outcome; the
    outcome is carried in the body (``error`` or ``isError``). A body that is
    not JSON gets 400 with a JSON-RPC parse error. Notifications get 202 with
    no body.

Cancellation:
    Each dispatch runs under a token that is cancelled when the client
    disconnects, which stops MAAS retries for a request nobody is waiting on.

This router holds no MCP logic; the dispatcher lives on ``app.state``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from maas_mcp.infrastructure.http.errors import parse_error_response
from maas_mcp.infrastructure.logging.logger import get_json_logger
from maas_mcp.infrastructure.resilience.cancellation import cancel_on_disconnect
from maas_mcp.mcp.discovery import SSE_MEDIA_TYPE, sse_frame, wants_sse
from maas_mcp.mcp.dispatcher import Dispatcher

logger = get_json_logger(__name__)
router = APIRouter(prefix="/mcp", tags=["mcp"])


def _dispatcher(request: Request) -> Dispatcher:
    dispatcher: Dispatcher = request.app.state.dispatcher
    return dispatcher


def _sse_response(payload: dict[str, Any]) -> StreamingResponse:
    async def _events() -> AsyncIterator[str]:
        yield sse_frame(payload)

    return StreamingResponse(
        _events(),
        media_type=SSE_MEDIA_TYPE,
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _read_json(request: Request) -> tuple[bool, Any, str]:
    raw = await request.body()
    try:
        return True, json.loads(raw), ""
    except ValueError as exc:
        return False, None, str(exc)


@router.get("", summary="MCP discovery", operation_id="mcp_discovery")
async def mcp_discovery(request: Request) -> Response:
    """Return the capabilities document, as JSON or one SSE event."""
    payload = _dispatcher(request).discovery_document()
    if wants_sse(request.headers.get("accept"), request.query_params.get("stream")):
        return _sse_response(payload)
    return JSONResponse(payload)


@router.get("/sse", summary="MCP discovery (SSE)", operation_id="mcp_discovery_sse")
async def mcp_discovery_sse(request: Request) -> Response:
    """Return the capabilities document framed as one SSE event."""
    return _sse_response(_dispatcher(request).discovery_document())


@router.post("", summary="MCP request", operation_id="mcp_request")
async def mcp_request(request: Request) -> Response:
    """Dispatch a JSON-RPC request, tool call or resource access."""
    ok, body, detail = await _read_json(request)
    if not ok:
        logger.warning("mcp.http_parse_error", extra={"error": detail})
        return parse_error_response(request, detail)

    async with cancel_on_disconnect(request.is_disconnected) as cancel:
        response = await _dispatcher(request).handle_payload(body, cancel=cancel, transport="http")
        if cancel.cancelled:
            logger.info("mcp.http_client_disconnected", extra={"path": request.url.path})
    if response is None:
        return Response(status_code=202)
    return JSONResponse(response.to_wire())


@router.post("/{tool_name}", summary="Call an MCP tool", operation_id="mcp_call_tool")
async def mcp_call_tool(tool_name: str, request: Request) -> Response:
    """Invoke ``tool_name`` with the request body as its parameters.

    An empty body is treated as ``{}``.
    """
    raw = await request.body()
    params: Any = {}
    if raw.strip():
        try:
            params = json.loads(raw)
        except ValueError as exc:
            logger.warning("mcp.http_parse_error", extra={"error": str(exc), "tool": tool_name})
            return parse_error_response(request, str(exc))

    async with cancel_on_disconnect(request.is_disconnected) as cancel:
        result = await _dispatcher(request).call_tool(
            tool_name, params, cancel=cancel, transport="http"
        )
        if cancel.cancelled:
            logger.info(
                "mcp.http_client_disconnected", extra={"path": request.url.path, "tool": tool_name}
            )
    return JSONResponse(result.to_wire())
