# src/maas_mcp/mcp/discovery.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Capabilities discovery document.

Builds the single JSON document that enumerates every registered tool (name,
description, input schema) and resource (name, description, URI template)
together with ``serverInfo``. The document is always computed in full; SSE
callers receive the same payload framed as one ``data:`` event.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Final

from maas_mcp.mcp.registry import Registry
from maas_mcp.mcp.schemas.jsonrpc import JSONRPC_VERSION

DISCOVERY_ID: Final[str] = "discovery"
SSE_MEDIA_TYPE: Final[str] = "text/event-stream"


def build_capabilities(registry: Registry, *, server_name: str, server_version: str) -> dict[str, Any]:
    """Return the ``result`` member of the discovery document."""
    return {
        "serverInfo": {"name": server_name, "version": server_version},
        "capabilities": {
            "tools": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": dict(tool.input_schema),
                }
                for tool in registry.list_tools()
            ],
            "resources": [
                {
                    "name": res.name,
                    "description": res.description,
                    "uri": res.uri_pattern,
                    "mimeType": res.mime_type,
                }
                for res in registry.list_resources()
            ],
        },
    }


def build_discovery_document(
    registry: Registry, *, server_name: str, server_version: str
) -> dict[str, Any]:
    """Return the full JSON-RPC-shaped discovery document served on ``GET /mcp``."""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "result": build_capabilities(
            registry, server_name=server_name, server_version=server_version
        ),
        "id": DISCOVERY_ID,
    }


def sse_frame(payload: Mapping[str, Any]) -> str:
    """Frame ``payload`` as a single Server-Sent-Events ``data:`` event."""
    return f"data: {json.dumps(payload, separators=(',', ':'))}\n\n"


def wants_sse(accept: str | None, stream_flag: str | None) -> bool:
    """Return True if the caller asked for SSE framing.

    Args:
        accept: Raw ``Accept`` header value.
        stream_flag: Raw ``stream`` query parameter value.
    """
    if accept and SSE_MEDIA_TYPE in accept.lower():
        return True
    return (stream_flag or "").strip().lower() in {"1", "true", "yes"}
