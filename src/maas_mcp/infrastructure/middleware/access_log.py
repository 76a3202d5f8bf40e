# src/maas_mcp/infrastructure/middleware/access_log.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""HTTP access records for the MCP surface.

One ``mcp.http_access`` record is written per request. Besides method, path
and status it carries the matched route template and, for the legacy
``POST /mcp/{tool_name}`` route, the tool name, so tool traffic can be
queried without parsing paths. Responses with status >= 500 (or a handler
that raised) are logged at WARNING. The correlation id is attached by the
JSON formatter.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from maas_mcp.infrastructure.logging.logger import get_json_logger

_logger: logging.Logger = get_json_logger(__name__)


def _access_fields(request: Request, status: int, started: float) -> dict[str, Any]:
    route = getattr(request.scope.get("route"), "path", None)
    fields: dict[str, Any] = {
        "transport": "http",
        "method": request.method,
        "path": request.url.path,
        "route": route or "unmatched",
        "status": status,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else None,
    }
    tool = request.path_params.get("tool_name")
    if tool:
        fields["tool"] = tool
    return fields


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Write one structured access record per HTTP request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _logger.warning(
                "mcp.http_access", extra={**_access_fields(request, 500, started), "raised": True}
            )
            raise

        fields = _access_fields(request, response.status_code, started)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        _logger.log(level, "mcp.http_access", extra=fields)
        return response
