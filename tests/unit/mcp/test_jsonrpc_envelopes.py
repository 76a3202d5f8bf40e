# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Unit tests for the JSON-RPC and MCP envelope wire shapes."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from maas_mcp.mcp.schemas.envelopes import (
    ResourceAccessError,
    ResourceAccessResult,
    ResourceContent,
    ToolCallRequest,
    ToolCallResult,
)
from maas_mcp.mcp.schemas.jsonrpc import (
    JSONRPC_RESPONSE_ADAPTER,
    JSONRPCError,
    JSONRPCErrorResponse,
    JSONRPCRequest,
    JSONRPCSuccess,
)


def test_success_wire_shape_has_no_error_member() -> None:
    wire = JSONRPCSuccess(result={"ok": True}, id=7).to_wire()

    assert wire == {"jsonrpc": "2.0", "result": {"ok": True}, "id": 7}


def test_success_keeps_null_result_and_null_id() -> None:
    wire = JSONRPCSuccess(result=None, id=None).to_wire()

    assert "result" in wire and wire["result"] is None
    assert wire["id"] is None


def test_error_wire_shape_omits_missing_data() -> None:
    resp = JSONRPCErrorResponse(error=JSONRPCError(code=-32601, message="Method not found"), id="a")

    assert resp.to_wire() == {
        "jsonrpc": "2.0",
        "error": {"code": -32601, "message": "Method not found"},
        "id": "a",
    }
    assert resp.is_error


def test_response_adapter_rejects_both_result_and_error() -> None:
    with pytest.raises(PydanticValidationError):
        JSONRPC_RESPONSE_ADAPTER.validate_python(
            {"jsonrpc": "2.0", "result": 1, "error": {"code": 1, "message": "x"}, "id": 1}
        )


def test_request_defaults_and_ignores_unknown_members() -> None:
    req = JSONRPCRequest.model_validate({"method": "ping", "extra": 1})

    assert req.jsonrpc == "2.0"
    assert req.params is None
    assert req.id is None


def test_tool_call_request_requires_tool_name() -> None:
    with pytest.raises(PydanticValidationError):
        ToolCallRequest.model_validate({"type": "tool_call", "params": {}})


def test_tool_call_result_writes_is_error_only_on_failure() -> None:
    assert ToolCallResult.success("[]").to_wire() == {"content": [{"type": "text", "text": "[]"}]}

    failed = ToolCallResult.failure("missing required field 'name'").to_wire()
    assert failed["isError"] is True
    assert failed["content"][0]["text"] == "missing required field 'name'"


def test_resource_shapes_use_mime_type_alias() -> None:
    ok = ResourceAccessResult(contents=[ResourceContent(uri="maas://tags", text="[]")])

    assert ok.to_wire() == {
        "contents": [{"uri": "maas://tags", "text": "[]", "mimeType": "application/json"}]
    }
    assert not ok.is_error
    assert ResourceAccessError(error="boom").to_wire() == {"isError": True, "error": "boom"}
