# src/maas_mcp/mcp/registry.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Tool and resource registry.

Summary:
    Holds the invokable tools and addressable resources of one server
    instance. Tools are looked up by exact name; resources are resolved by
    matching a concrete URI against registered URI templates such as
    ``maas://machine/{system_id}/details``.

Design:
    * The registry is an explicit object built at startup and handed to the
      dispatcher and transports. There is no module-level instance.
    * Writers take a lock and publish a new immutable snapshot; readers never
      lock (copy-on-write), so lookups from concurrent requests are safe.
    * Resource templates are compiled once at registration. Each ``{param}``
      matches a single path segment. Iteration order is registration order and
      the first matching template wins.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Final

from maas_mcp.domain.exceptions.mcp import DuplicateNameError, ResourceNotFoundError
from maas_mcp.infrastructure.resilience.cancellation import CancelToken

ToolHandler = Callable[[Any, CancelToken], Awaitable[Any]]
ResourceHandler = Callable[[Mapping[str, str], CancelToken], Awaitable[Any]]

_PARAM_RE: Final[re.Pattern[str]] = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class ToolInfo:
    """Invokable tool: name, description, JSON schema and async handler."""

    name: str
    description: str
    input_schema: Mapping[str, Any]
    handler: ToolHandler


@dataclass(frozen=True)
class ResourceInfo:
    """URI-addressable read-only view backed by an async handler."""

    name: str
    description: str
    uri_pattern: str
    handler: ResourceHandler
    mime_type: str = "application/json"
    _matcher: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_matcher", compile_uri_template(self.uri_pattern))

    def match(self, uri: str) -> dict[str, str] | None:
        """Return extracted template parameters, or ``None`` if ``uri`` does not match."""
        m = self._matcher.fullmatch(uri)
        return m.groupdict() if m else None


def compile_uri_template(template: str) -> re.Pattern[str]:
    """Compile a ``{param}`` URI template into an anchored regex.

    Args:
        template: URI template, e.g. ``maas://tags/{tag_name}/machines``.

    Returns:
        Compiled pattern with one named group per template parameter.

    Raises:
        ValueError: If the template repeats a parameter name.
    """
    parts: list[str] = []
    seen: set[str] = set()
    pos = 0
    for m in _PARAM_RE.finditer(template):
        name = m.group(1)
        if name in seen:
            raise ValueError(f"Duplicate parameter {name!r} in URI template {template!r}")
        seen.add(name)
        parts.append(re.escape(template[pos : m.start()]))
        parts.append(f"(?P<{name}>[^/]+)")
        pos = m.end()
    parts.append(re.escape(template[pos:]))
    return re.compile("".join(parts))


class Registry:
    """In-memory tool/resource registry with lock-free reads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tools: Mapping[str, ToolInfo] = {}
        self._resources: tuple[ResourceInfo, ...] = ()

    # ------------------------------------------------------------------ tools

    def register_tool(self, info: ToolInfo) -> None:
        """Add a tool.

        Raises:
            DuplicateNameError: If a tool with the same name exists. The
                registry is left unchanged.
        """
        with self._lock:
            if info.name in self._tools:
                raise DuplicateNameError(info.name)
            tools = dict(self._tools)
            tools[info.name] = info
            self._tools = tools

    def get_tool(self, name: str) -> ToolInfo | None:
        """Return the tool registered under exactly ``name``, or ``None``."""
        return self._tools.get(name)

    def list_tools(self) -> tuple[ToolInfo, ...]:
        """Return a snapshot of all tools in registration order."""
        return tuple(self._tools.values())

    # -------------------------------------------------------------- resources

    def register_resource(self, info: ResourceInfo) -> None:
        """Add a resource.

        Raises:
            DuplicateNameError: If a resource with the same name exists.
        """
        with self._lock:
            if any(r.name == info.name for r in self._resources):
                raise DuplicateNameError(info.name)
            self._resources = (*self._resources, info)

    def get_resource(self, name: str) -> ResourceInfo | None:
        """Return the resource registered under exactly ``name``, or ``None``."""
        for res in self._resources:
            if res.name == name:
                return res
        return None

    def resolve_resource(self, uri: str) -> tuple[ResourceInfo, dict[str, str]]:
        """Resolve a concrete URI to its resource and extracted parameters.

        Raises:
            ResourceNotFoundError: If no registered template matches.
        """
        for res in self._resources:
            params = res.match(uri)
            if params is not None:
                return res, params
        raise ResourceNotFoundError(uri)

    def list_resources(self) -> tuple[ResourceInfo, ...]:
        """Return a snapshot of all resources in registration order."""
        return self._resources
