# src/maas_mcp/mcp/capabilities/catalog.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Default capability catalog.

Registers every MAAS tool and resource on a :class:`Registry`. Two short
aliases are kept for older clients: ``list_machines`` and ``create_tag``.
"""

from __future__ import annotations

from typing import Final

from maas_mcp.domain.interfaces.backend import BackendClient
from maas_mcp.infrastructure.logging.logger import get_json_logger
from maas_mcp.mcp.capabilities.common import alias_tool
from maas_mcp.mcp.capabilities.machines import machine_tools
from maas_mcp.mcp.capabilities.networks import network_tools
from maas_mcp.mcp.capabilities.resources import (
    machine_resources,
    network_resources,
    storage_resources,
    tag_resources,
)
from maas_mcp.mcp.capabilities.tags import tag_tools
from maas_mcp.mcp.registry import Registry

logger = get_json_logger(__name__)

TOOL_ALIASES: Final[dict[str, str]] = {
    "list_machines": "maas_list_machines",
    "create_tag": "maas_create_tag",
}


def register_default_capabilities(registry: Registry, backend: BackendClient) -> Registry:
    """Register the default tools, aliases and resources.

    Args:
        registry: Target registry; must not already hold any of these names.
        backend: MAAS backend the handlers call.

    Returns:
        The same registry, for chaining.

    Raises:
        DuplicateNameError: If a name is already registered.
    """
    tools = [*machine_tools(backend), *network_tools(backend), *tag_tools(backend)]
    for tool in tools:
        registry.register_tool(tool)

    for alias, target in TOOL_ALIASES.items():
        tool = registry.get_tool(target)
        if tool is not None:
            registry.register_tool(alias_tool(tool, alias))

    resources = [
        *machine_resources(backend),
        *network_resources(backend),
        *tag_resources(backend),
        *storage_resources(backend),
    ]
    for res in resources:
        registry.register_resource(res)

    logger.info(
        "mcp.capabilities_registered",
        extra={"tools": len(registry.list_tools()), "resources": len(registry.list_resources())},
    )
    return registry
