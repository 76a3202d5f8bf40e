# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Unit tests for the discovery document, SSE framing and stdio sentinels."""

from __future__ import annotations

import json

import pytest

from maas_mcp.config.settings import HandshakeMode
from maas_mcp.mcp.discovery import (
    DISCOVERY_ID,
    build_discovery_document,
    sse_frame,
    wants_sse,
)
from maas_mcp.mcp.handshake import PLAIN_READY_LINE, emit_ready_sentinels, ready_sentinels
from maas_mcp.mcp.registry import Registry


def test_discovery_document_shape(registry: Registry) -> None:
    doc = build_discovery_document(registry, server_name="maas-mcp", server_version="1.2.3")

    assert doc["jsonrpc"] == "2.0"
    assert doc["id"] == DISCOVERY_ID
    assert doc["result"]["serverInfo"] == {"name": "maas-mcp", "version": "1.2.3"}

    tools = doc["result"]["capabilities"]["tools"]
    by_name = {t["name"]: t for t in tools}
    create = by_name["maas_create_tag"]
    assert create["inputSchema"]["type"] == "object"
    assert "name" in create["inputSchema"]["required"]
    assert "title" not in create["inputSchema"]


def test_discovery_includes_resources_with_uri_and_mime_type(registry: Registry) -> None:
    doc = build_discovery_document(registry, server_name="n", server_version="v")

    resources = {r["name"]: r for r in doc["result"]["capabilities"]["resources"]}
    assert resources["maas_tag_machines"]["uri"] == "maas://tags/{tag_name}/machines"
    assert resources["maas_tag_machines"]["mimeType"] == "application/json"


def test_sse_frame_is_single_data_event() -> None:
    frame = sse_frame({"a": 1, "b": [1, 2]})

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    assert frame.count("\n") == 2
    assert json.loads(frame[len("data: ") :]) == {"a": 1, "b": [1, 2]}


@pytest.mark.parametrize(
    ("accept", "stream", "expected"),
    [
        ("text/event-stream", None, True),
        ("application/json, Text/Event-Stream;q=0.9", None, True),
        ("application/json", None, False),
        (None, "true", True),
        (None, "1", True),
        (None, "false", False),
        (None, None, False),
    ],
)
def test_wants_sse(accept: str | None, stream: str | None, expected: bool) -> None:
    assert wants_sse(accept, stream) is expected


def test_full_handshake_writes_four_lines_in_order() -> None:
    lines = ready_sentinels(HandshakeMode.FULL, name="maas-mcp-server", version="1.0.0")

    assert len(lines) == 4
    assert lines[0] == PLAIN_READY_LINE
    second, third, fourth = (json.loads(line) for line in lines[1:])
    assert second == {"jsonrpc": "2.0", "method": "ready", "params": {}, "id": "0"}
    assert third == {"method": "ready", "params": {}, "id": "0"}
    assert fourth["params"] == {"name": "maas-mcp-server", "version": "1.0.0"}
    assert fourth["jsonrpc"] == "2.0"


def test_single_handshake_is_one_notification() -> None:
    lines = ready_sentinels(HandshakeMode.SINGLE, name="n", version="v")

    assert len(lines) == 1
    msg = json.loads(lines[0])
    assert "id" not in msg
    assert msg["method"] == "ready"
    assert msg["params"] == {"name": "n", "version": "v"}


def test_no_handshake_writes_nothing() -> None:
    written: list[str] = []

    count = emit_ready_sentinels(written.append, HandshakeMode.NONE, name="n", version="v")

    assert count == 0
    assert written == []


def test_sentinel_lines_contain_no_newlines() -> None:
    for line in ready_sentinels(HandshakeMode.FULL, name="n", version="v"):
        assert "\n" not in line
