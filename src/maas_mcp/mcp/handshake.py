# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Stdio readiness sentinels.

Some stdio clients wait for a plain-text line, others for one of several
JSON-RPC ``ready`` shapes before they start sending requests. This module
owns those lines so that the dispatcher never sees them.
"""

from __future__ import annotations

import json
from collections.abc import Callable

from maas_mcp.config.settings import HandshakeMode

PLAIN_READY_LINE = "MCP server ready"


def ready_sentinels(mode: HandshakeMode, *, name: str, version: str) -> list[str]:
    """Return the lines to write at startup for ``mode``, in order."""
    if mode is HandshakeMode.NONE:
        return []

    described = {"jsonrpc": "2.0", "method": "ready", "params": {"name": name, "version": version}}
    if mode is HandshakeMode.SINGLE:
        return [json.dumps(described, separators=(",", ":"))]

    return [
        PLAIN_READY_LINE,
        json.dumps({"jsonrpc": "2.0", "method": "ready", "params": {}, "id": "0"}, separators=(",", ":")),
        json.dumps({"method": "ready", "params": {}, "id": "0"}, separators=(",", ":")),
        json.dumps({**described, "id": "0"}, separators=(",", ":")),
    ]


def emit_ready_sentinels(
    write_line: Callable[[str], None], mode: HandshakeMode, *, name: str, version: str
) -> int:
    """Write the readiness sentinels through ``write_line``.

    Returns:
        Number of lines written.
    """
    lines = ready_sentinels(mode, name=name, version=version)
    for line in lines:
        write_line(line)
    return len(lines)
