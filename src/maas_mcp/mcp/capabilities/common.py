# src/maas_mcp/mcp/capabilities/common.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Shared plumbing for MCP capability modules.

A capability is a plain async function ``fn(params, backend, cancel)`` that
receives an already-validated Pydantic params model. :func:`bind_tool` turns
it into a :class:`ToolInfo` whose handler validates the raw JSON first and
whose input schema is generated from the same model.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.params import ToolParams, validate_params
from maas_mcp.mcp.registry import ToolInfo

ParamsT = TypeVar("ParamsT", bound=ToolParams)
BackendT = TypeVar("BackendT")

Capability = Callable[[ParamsT, BackendT, CancelToken], Awaitable[Any]]


def input_schema(model: type[ToolParams]) -> dict[str, Any]:
    """Return the JSON schema advertised for ``model`` in discovery."""
    schema = model.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("properties", {})
    return schema


def bind_tool(
    name: str,
    description: str,
    model: type[ParamsT],
    fn: Capability[ParamsT, BackendT],
    backend: BackendT,
) -> ToolInfo:
    """Bind a capability function and its backend into a registry record."""

    async def handler(raw: Any, cancel: CancelToken) -> Any:
        params = validate_params(model, raw)
        return await fn(params, backend, cancel)

    handler.__name__ = f"tool_{name}"
    return ToolInfo(name=name, description=description, input_schema=input_schema(model), handler=handler)


def alias_tool(tool: ToolInfo, alias: str) -> ToolInfo:
    """Return a copy of ``tool`` registered under ``alias``."""
    return ToolInfo(
        name=alias,
        description=f"{tool.description} (alias of {tool.name})",
        input_schema=tool.input_schema,
        handler=tool.handler,
    )
