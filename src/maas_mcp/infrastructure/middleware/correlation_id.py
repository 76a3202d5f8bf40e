# src/maas_mcp/infrastructure/middleware/correlation_id.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Correlation and trace context for HTTP requests.

Contract:
    • Reads:  X-Correlation-ID (optional), traceparent (optional, W3C)
    • Writes: X-Correlation-ID on every response
    • Stores: request.state.correlation_id, request.state.trace_id
    • Sets the logging contextvars, so every log record and every JSON-RPC
      error ``data`` produced for the request carries the same ids

Notes:
    An unsafe or missing correlation id is replaced by a UUID4. The trace id
    is taken from a well-formed ``traceparent`` only; otherwise log records
    fall back to the active OpenTelemetry span.
"""

from __future__ import annotations

import re
import uuid
from typing import Final

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from maas_mcp.infrastructure.logging.logger import set_request_context

CORRELATION_ID_HEADER: Final[str] = "X-Correlation-ID"
TRACEPARENT_HEADER: Final[str] = "traceparent"

_SAFE_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9\-_.:@]{1,128}$")
# version-traceid-parentid-flags; version ff is reserved.
_TRACEPARENT_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?!ff)[0-9a-f]{2}-([0-9a-f]{32})-([0-9a-f]{16})-[0-9a-f]{2}$"
)


def coerce_correlation_id(raw: str | None) -> str:
    """Return ``raw`` if it is a safe identifier, else a fresh UUID4."""
    if raw and _SAFE_RE.match(raw):
        return raw
    return str(uuid.uuid4())


def trace_id_from_traceparent(raw: str | None) -> str | None:
    """Extract the 32-hex trace id from a W3C ``traceparent`` value.

    All-zero trace or parent ids are invalid per the W3C format and yield
    ``None``, as does anything malformed.
    """
    if not raw:
        return None
    m = _TRACEPARENT_RE.match(raw.strip().lower())
    if m is None:
        return None
    trace_id, parent_id = m.groups()
    if not trace_id.strip("0") or not parent_id.strip("0"):
        return None
    return trace_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind correlation and trace ids to the request and its log context."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        headers = request.headers
        cid = coerce_correlation_id(headers.get(CORRELATION_ID_HEADER))
        trace_id = trace_id_from_traceparent(headers.get(TRACEPARENT_HEADER))

        request.state.correlation_id = cid
        request.state.trace_id = trace_id
        # Empty string clears a trace id left over from an earlier request.
        set_request_context(correlation_id=cid, trace_id=trace_id or "")

        response: Response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response
