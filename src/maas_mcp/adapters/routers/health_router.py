# src/maas_mcp/adapters/routers/health_router.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Health endpoint (Adapters Layer).

``GET /health`` is a liveness signal only. It performs no MAAS I/O, so a
slow or unreachable MAAS never fails the probe.
"""

from __future__ import annotations

import typing as t

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

router = APIRouter(tags=["health"])


class LivenessResponse(BaseModel):
    """Liveness response indicating the process is running."""

    status: t.Literal["ok"] = "ok"
    service: str | None = None
    version: str | None = None


@router.get(
    "/health",
    summary="Liveness",
    operation_id="health_liveness",
    response_model=LivenessResponse,
    status_code=status.HTTP_200_OK,
)
async def liveness(request: Request) -> LivenessResponse:
    """Return a fast liveness signal (no external I/O)."""
    settings = getattr(request.app.state, "settings", None)
    return LivenessResponse(
        service=getattr(settings, "service_name", None),
        version=getattr(settings, "service_version", None),
    )
