# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""JSON-RPC 2.0 Envelope Schemas.

Purpose:
- Model the JSON-RPC request and the two response variants (success and
  error) as distinct Pydantic models, so a response can never carry both
  ``result`` and ``error``.

Layer: adapters/mcp

Notes:
- ``JSONRPCResponse`` is the union of both variants; parse wire payloads with
  :data:`JSONRPC_RESPONSE_ADAPTER`.
- ``to_wire()`` produces the exact dict written to a transport. ``error.data``
  is omitted when empty, ``id`` is always present (``null`` when unknown).
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

JSONRPC_VERSION = "2.0"

RequestId = str | int | float | None


class JSONRPCRequest(BaseModel):
    """Inbound JSON-RPC request after envelope normalization."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = Field(default=JSONRPC_VERSION, description="Protocol version.")
    method: str = Field(..., min_length=1, description="Tool name or built-in method.")
    params: Any = Field(default=None, description="Opaque method parameters.")
    id: RequestId = Field(default=None, description="Caller-chosen request id.")


class JSONRPCError(BaseModel):
    """Error object carried by a failed JSON-RPC response."""

    model_config = ConfigDict(extra="forbid")

    code: int = Field(..., description="JSON-RPC error code.")
    message: str = Field(..., description="Human-readable error message.")
    data: Any = Field(default=None, description="Structured error detail.")


class JSONRPCSuccess(BaseModel):
    """Successful JSON-RPC response: ``result`` present, ``error`` absent."""

    model_config = ConfigDict(extra="forbid")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    result: Any
    id: RequestId

    @property
    def is_error(self) -> bool:
        return False

    def to_wire(self) -> dict[str, Any]:
        """Return the wire dict for this response."""
        return {"jsonrpc": self.jsonrpc, "result": self.result, "id": self.id}


class JSONRPCErrorResponse(BaseModel):
    """Failed JSON-RPC response: ``error`` present, ``result`` absent."""

    model_config = ConfigDict(extra="forbid")

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    error: JSONRPCError
    id: RequestId

    @property
    def is_error(self) -> bool:
        return True

    def to_wire(self) -> dict[str, Any]:
        """Return the wire dict for this response."""
        err: dict[str, Any] = {"code": self.error.code, "message": self.error.message}
        if self.error.data is not None:
            err["data"] = self.error.data
        return {"jsonrpc": self.jsonrpc, "error": err, "id": self.id}


JSONRPCResponse = JSONRPCSuccess | JSONRPCErrorResponse

JSONRPC_RESPONSE_ADAPTER: TypeAdapter[JSONRPCResponse] = TypeAdapter(JSONRPCResponse)
