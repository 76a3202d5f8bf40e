# src/maas_mcp/infrastructure/middleware/metrics.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Prometheus HTTP metrics middleware.

Records request count and latency per (method, route, status). The route
label is the matched route template, so ``/mcp/maas_list_machines`` and
``/mcp/create_tag`` share ``/mcp/{tool_name}``. Unmatched paths are
labelled ``unmatched`` to keep cardinality bounded.
"""

from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from maas_mcp.infrastructure.observability.metrics import (
    get_http_request_duration_seconds,
    get_http_requests_total,
)

logger = logging.getLogger(__name__)


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else "unmatched"


class PromMetricsMiddleware(BaseHTTPMiddleware):
    """Record per-request counters and latency."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        method = request.method.upper()
        route = _route_label(request)
        try:
            get_http_requests_total().labels(method, route, str(response.status_code)).inc()
            get_http_request_duration_seconds().labels(method, route).observe(elapsed)
        except Exception:
            # Metrics must never affect the response.
            logger.debug("prom.metrics_record_failed", exc_info=True)

        return response
