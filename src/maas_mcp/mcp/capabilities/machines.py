# src/maas_mcp/mcp/capabilities/machines.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MCP capabilities: machine lifecycle.

Tools:
    maas_list_machines, maas_get_machine_details, maas_allocate_machine,
    maas_deploy_machine, maas_release_machine, maas_get_machine_power_state,
    maas_power_on_machine, maas_power_off_machine

Parameters arrive already validated as the Pydantic model declared next to
each function. Backend errors propagate unchanged so the dispatcher can map
them.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field

from maas_mcp.domain.interfaces.backend import MachineClient
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.capabilities.common import bind_tool
from maas_mcp.mcp.params import ToolParams
from maas_mcp.mcp.registry import ToolInfo


class ListMachinesParams(ToolParams):
    """Parameters for ``maas_list_machines``."""

    filters: dict[str, Any] | None = Field(
        default=None,
        description="MAAS machine filters, e.g. {'hostname': 'node1', 'zone': 'default'}.",
    )


class MachineRefParams(ToolParams):
    """Parameters naming a single machine."""

    system_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("system_id", "id"),
        description="MAAS system id of the machine.",
    )


class AllocateMachineParams(ToolParams):
    """Parameters for ``maas_allocate_machine``."""

    hostname: str | None = Field(default=None, description="Allocate this machine by hostname.")
    zone: str | None = Field(default=None, description="Availability zone name.")
    pool: str | None = Field(default=None, description="Resource pool name.")
    arch: str | None = Field(default=None, description="Architecture, e.g. 'amd64'.")
    cpu_count: int | None = Field(default=None, ge=1, description="Minimum CPU count.")
    mem: int | None = Field(default=None, ge=1, description="Minimum memory in MiB.")
    tags: list[str] | None = Field(default=None, description="Tags the machine must carry.")
    constraints: dict[str, Any] | None = Field(
        default=None, description="Additional raw MAAS allocation constraints."
    )

    def as_constraints(self) -> dict[str, Any]:
        merged: dict[str, Any] = dict(self.constraints or {})
        merged.update(self.model_dump(exclude={"constraints"}, exclude_none=True))
        return merged


class DeployMachineParams(MachineRefParams):
    """Parameters for ``maas_deploy_machine``."""

    distro_series: str | None = Field(default=None, description="OS release, e.g. 'jammy'.")
    user_data: str | None = Field(default=None, description="Base64-encoded cloud-init user data.")
    hwe_kernel: str | None = Field(default=None, description="Kernel to deploy, e.g. 'hwe-22.04'.")


class ReleaseMachineParams(MachineRefParams):
    """Parameters for ``maas_release_machine``."""

    comment: str | None = Field(default=None, description="Reason recorded in the MAAS event log.")


async def list_machines(params: ListMachinesParams, backend: MachineClient, cancel: CancelToken) -> Any:
    return await backend.list_machines(params.filters, cancel=cancel)


async def get_machine_details(params: MachineRefParams, backend: MachineClient, cancel: CancelToken) -> Any:
    return await backend.get_machine(params.system_id, cancel=cancel)


async def allocate_machine(
    params: AllocateMachineParams, backend: MachineClient, cancel: CancelToken
) -> Any:
    return await backend.allocate_machine(params.as_constraints(), cancel=cancel)


async def deploy_machine(params: DeployMachineParams, backend: MachineClient, cancel: CancelToken) -> Any:
    options = params.model_dump(include={"distro_series", "user_data", "hwe_kernel"}, exclude_none=True)
    return await backend.deploy_machine(params.system_id, options, cancel=cancel)


async def release_machine(params: ReleaseMachineParams, backend: MachineClient, cancel: CancelToken) -> Any:
    return await backend.release_machine(params.system_id, params.comment, cancel=cancel)


async def get_machine_power_state(
    params: MachineRefParams, backend: MachineClient, cancel: CancelToken
) -> Any:
    return await backend.get_power_state(params.system_id, cancel=cancel)


async def power_on_machine(params: MachineRefParams, backend: MachineClient, cancel: CancelToken) -> Any:
    return await backend.power_on_machine(params.system_id, cancel=cancel)


async def power_off_machine(params: MachineRefParams, backend: MachineClient, cancel: CancelToken) -> Any:
    return await backend.power_off_machine(params.system_id, cancel=cancel)


def machine_tools(backend: MachineClient) -> list[ToolInfo]:
    """Return the machine tools bound to ``backend``."""
    return [
        bind_tool(
            "maas_list_machines",
            "List MAAS machines, optionally filtered.",
            ListMachinesParams,
            list_machines,
            backend,
        ),
        bind_tool(
            "maas_get_machine_details",
            "Get detailed information about one machine.",
            MachineRefParams,
            get_machine_details,
            backend,
        ),
        bind_tool(
            "maas_allocate_machine",
            "Allocate a ready machine matching the given constraints.",
            AllocateMachineParams,
            allocate_machine,
            backend,
        ),
        bind_tool(
            "maas_deploy_machine",
            "Deploy an operating system to an allocated machine.",
            DeployMachineParams,
            deploy_machine,
            backend,
        ),
        bind_tool(
            "maas_release_machine",
            "Release a machine back to the pool.",
            ReleaseMachineParams,
            release_machine,
            backend,
        ),
        bind_tool(
            "maas_get_machine_power_state",
            "Query the current power state of a machine.",
            MachineRefParams,
            get_machine_power_state,
            backend,
        ),
        bind_tool(
            "maas_power_on_machine",
            "Power on a machine.",
            MachineRefParams,
            power_on_machine,
            backend,
        ),
        bind_tool(
            "maas_power_off_machine",
            "Power off a machine.",
            MachineRefParams,
            power_off_machine,
            backend,
        ),
    ]
