# src/maas_mcp/adapters/routers/metrics_router.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Prometheus scrape endpoint (`/metrics`).

Collectors are created lazily, so the MCP families are touched here first to
make them appear (with no samples) on a cold scrape.
"""

from __future__ import annotations

from fastapi import APIRouter, Response
import prometheus_client as prom
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from maas_mcp.infrastructure.observability.metrics import (
    get_maas_upstream_requests_total,
    get_maas_upstream_retries_total,
    get_mcp_request_duration_seconds,
    get_mcp_requests_total,
)

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics_probe() -> Response:
    """Expose Prometheus metrics in text format."""
    get_mcp_requests_total()
    get_mcp_request_duration_seconds()
    get_maas_upstream_requests_total()
    get_maas_upstream_retries_total()
    return Response(content=generate_latest(prom.REGISTRY), media_type=CONTENT_TYPE_LATEST)
