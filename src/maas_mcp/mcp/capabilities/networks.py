# src/maas_mcp/mcp/capabilities/networks.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MCP capabilities: subnets, VLANs and machine interfaces."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, model_validator

from maas_mcp.domain.interfaces.backend import NetworkClient
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.capabilities.common import bind_tool
from maas_mcp.mcp.capabilities.machines import MachineRefParams
from maas_mcp.mcp.params import ToolParams
from maas_mcp.mcp.registry import ToolInfo


class ListSubnetsParams(ToolParams):
    """Parameters for ``maas_list_subnets``."""

    fabric_id: int | None = Field(default=None, ge=0, description="Only subnets on this fabric.")


class SubnetRefParams(ToolParams):
    """Parameters for ``maas_get_subnet_details``: an id or a CIDR."""

    subnet_id: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("subnet_id", "id"),
        description="MAAS subnet id.",
    )
    cidr: str | None = Field(default=None, description="Subnet CIDR, e.g. '10.0.0.0/24'.")

    @model_validator(mode="after")
    def _require_reference(self) -> SubnetRefParams:
        if self.subnet_id is None and not self.cidr:
            raise ValueError("either 'subnet_id' or 'cidr' is required")
        return self


class ListVlansParams(ToolParams):
    """Parameters for ``maas_list_vlans``."""

    fabric_id: int = Field(..., ge=0, description="Fabric whose VLANs to list.")


async def list_subnets(params: ListSubnetsParams, backend: NetworkClient, cancel: CancelToken) -> Any:
    return await backend.list_subnets(params.fabric_id, cancel=cancel)


async def get_subnet_details(params: SubnetRefParams, backend: NetworkClient, cancel: CancelToken) -> Any:
    ref: int | str = params.subnet_id if params.subnet_id is not None else str(params.cidr)
    return await backend.get_subnet(ref, cancel=cancel)


async def list_vlans(params: ListVlansParams, backend: NetworkClient, cancel: CancelToken) -> Any:
    return await backend.list_vlans(params.fabric_id, cancel=cancel)


async def get_machine_interfaces(
    params: MachineRefParams, backend: NetworkClient, cancel: CancelToken
) -> Any:
    return await backend.get_machine_interfaces(params.system_id, cancel=cancel)


def network_tools(backend: NetworkClient) -> list[ToolInfo]:
    """Return the network tools bound to ``backend``."""
    return [
        bind_tool(
            "maas_list_subnets",
            "List subnets, optionally restricted to one fabric.",
            ListSubnetsParams,
            list_subnets,
            backend,
        ),
        bind_tool(
            "maas_get_subnet_details",
            "Get details of one subnet by id or CIDR.",
            SubnetRefParams,
            get_subnet_details,
            backend,
        ),
        bind_tool(
            "maas_list_vlans",
            "List the VLANs of a fabric.",
            ListVlansParams,
            list_vlans,
            backend,
        ),
        bind_tool(
            "maas_get_machine_interfaces",
            "List the network interfaces of a machine.",
            MachineRefParams,
            get_machine_interfaces,
            backend,
        ),
    ]
