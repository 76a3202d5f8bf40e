# src/maas_mcp/infrastructure/http/errors.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""HTTP exception handlers.

Every error leaving the HTTP surface is a JSON-RPC error object so that MCP
clients can parse it the same way as dispatcher errors. The HTTP status is
kept (404 for unknown routes, 405 for wrong methods, 500 for crashes) and
the correlation id is always present in ``error.data``.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from maas_mcp.domain.exceptions.mcp import INTERNAL_ERROR, INVALID_REQUEST, PARSE_ERROR
from maas_mcp.infrastructure.logging.logger import get_correlation_id, get_json_logger
from maas_mcp.infrastructure.middleware.correlation_id import CORRELATION_ID_HEADER
from maas_mcp.mcp.schemas.jsonrpc import JSONRPC_VERSION

logger = get_json_logger(__name__)


def _correlation_id(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "correlation_id", None) or get_correlation_id()


def jsonrpc_error_body(
    *,
    code: int,
    message: str,
    data: dict[str, Any] | None = None,
    correlation_id: str | None = None,
    request_id: str | int | float | None = None,
) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 error response body."""
    payload: dict[str, Any] = dict(data or {})
    if correlation_id is not None:
        payload["correlation_id"] = correlation_id
    err: dict[str, Any] = {"code": code, "message": message}
    if payload:
        err["data"] = payload
    return {"jsonrpc": JSONRPC_VERSION, "error": err, "id": request_id}


def _respond(request: Request, status_code: int, body: dict[str, Any]) -> Response:
    cid = _correlation_id(request)
    headers = {CORRELATION_ID_HEADER: cid} if cid else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def parse_error_response(request: Request, detail: str) -> Response:
    """Return the 400 response for a body that is not valid JSON."""
    body = jsonrpc_error_body(
        code=PARSE_ERROR,
        message="Parse error",
        data={"kind": "ParseError", "detail": detail},
        correlation_id=_correlation_id(request),
    )
    return _respond(request, 400, body)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> Response:
    body = jsonrpc_error_body(
        code=INVALID_REQUEST,
        message="Invalid Request",
        data={"kind": "InvalidRequest", "errors": exc.errors()},
        correlation_id=_correlation_id(request),
    )
    return _respond(request, 422, body)


async def handle_http_exception(request: Request, exc: HTTPException) -> Response:
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    body = jsonrpc_error_body(
        code=INVALID_REQUEST,
        message="Invalid Request",
        data={"kind": "HTTPError", "status": exc.status_code, "detail": detail},
        correlation_id=_correlation_id(request),
    )
    return _respond(request, exc.status_code, body)


async def handle_unhandled_exception(request: Request, exc: Exception) -> Response:
    logger.error(
        "http.unhandled_exception",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"path": request.url.path, "method": request.method},
    )
    body = jsonrpc_error_body(
        code=INTERNAL_ERROR,
        message="Internal error",
        data={"kind": "Internal"},
        correlation_id=_correlation_id(request),
    )
    return _respond(request, 500, body)
