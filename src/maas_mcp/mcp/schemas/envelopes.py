# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MCP Tool-Call & Resource-Access Envelopes.

Purpose:
- Model the MCP-SDK style HTTP shapes that sit beside JSON-RPC:
  ``{"type": "tool_call", ...}`` and ``{"type": "resource_access", ...}``
  requests and their content-block responses.

Layer: adapters/mcp

Notes:
- Each response variant exposes ``is_error`` so callers can branch on the
  outcome without looking at the wire shape.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolCallRequest(BaseModel):
    """``{"type": "tool_call", "tool": <name>, "params": {...}}``."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_call"] = "tool_call"
    tool: str = Field(..., min_length=1, description="Registered tool name.")
    params: Any = Field(default=None, description="Tool parameters.")


class ResourceAccessRequest(BaseModel):
    """``{"type": "resource_access", "uri": <uri>}``."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["resource_access"] = "resource_access"
    uri: str = Field(..., description="Concrete resource URI.")


class TextContent(BaseModel):
    """Single text content block."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str


class ToolCallResult(BaseModel):
    """Tool-call response; ``isError`` is written only on failure."""

    model_config = ConfigDict(extra="forbid")

    content: list[TextContent]
    is_error: bool = False

    @classmethod
    def success(cls, text: str) -> ToolCallResult:
        return cls(content=[TextContent(text=text)])

    @classmethod
    def failure(cls, message: str) -> ToolCallResult:
        return cls(content=[TextContent(text=message)], is_error=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the wire dict for this response."""
        body: dict[str, Any] = {"content": [c.model_dump() for c in self.content]}
        if self.is_error:
            return {"isError": True, **body}
        return body


class ResourceContent(BaseModel):
    """One entry of a resource-access ``contents`` list."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    uri: str
    text: str
    mime_type: str = Field(default="application/json", alias="mimeType")


class ResourceAccessResult(BaseModel):
    """Successful resource read."""

    model_config = ConfigDict(extra="forbid")

    contents: list[ResourceContent]

    @property
    def is_error(self) -> bool:
        return False

    def to_wire(self) -> dict[str, Any]:
        """Return the wire dict for this response."""
        return {"contents": [c.model_dump(by_alias=True) for c in self.contents]}


class ResourceAccessError(BaseModel):
    """Failed resource read."""

    model_config = ConfigDict(extra="forbid")

    error: str

    @property
    def is_error(self) -> bool:
        return True

    def to_wire(self) -> dict[str, Any]:
        """Return the wire dict for this response."""
        return {"isError": True, "error": self.error}
