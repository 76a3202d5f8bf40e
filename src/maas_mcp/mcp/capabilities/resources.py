# src/maas_mcp/mcp/capabilities/resources.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MCP resources: read-only ``maas://`` views over the MAAS backend.

Each template parameter matches exactly one path segment. Values are
percent-decoded before they reach the backend, so a subnet can be addressed
by CIDR as ``maas://subnets/10.0.0.0%2F24``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from urllib.parse import unquote

from maas_mcp.domain.exceptions.mcp import ValidationError
from maas_mcp.domain.interfaces.backend import (
    BackendClient,
    BlockDeviceClient,
    RAIDClient,
    VolumeGroupClient,
)
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.registry import ResourceInfo

_Reader = Callable[[Mapping[str, str], CancelToken], Awaitable[Any]]


def _param(params: Mapping[str, str], name: str) -> str:
    value = unquote(params.get(name, ""))
    if not value:
        raise ValidationError(f"missing URI parameter '{name}'", details={"parameter": name})
    return value


def _subnet_ref(raw: str) -> int | str:
    return int(raw) if raw.isascii() and raw.isdigit() else raw


def machine_resources(backend: BackendClient) -> list[ResourceInfo]:
    """Machine views."""

    async def machine(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.get_machine(_param(params, "system_id"), cancel=cancel)

    async def machines(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.list_machines(None, cancel=cancel)

    async def interfaces(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.get_machine_interfaces(_param(params, "system_id"), cancel=cancel)

    return [
        ResourceInfo(
            name="maas_machine",
            description="Details of one machine.",
            uri_pattern="maas://machine/{system_id}/details",
            handler=machine,
        ),
        ResourceInfo(
            name="maas_machines",
            description="All machines.",
            uri_pattern="maas://machines/list",
            handler=machines,
        ),
        ResourceInfo(
            name="maas_machine_interfaces",
            description="Network interfaces of one machine.",
            uri_pattern="maas://machine/{system_id}/interfaces",
            handler=interfaces,
        ),
    ]


def network_resources(backend: BackendClient) -> list[ResourceInfo]:
    """Subnet and zone views."""

    async def subnets(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.list_subnets(None, cancel=cancel)

    async def subnet(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.get_subnet(_subnet_ref(_param(params, "subnet_id")), cancel=cancel)

    async def zone(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.get_zone(_subnet_ref(_param(params, "zone_id")), cancel=cancel)

    return [
        ResourceInfo(
            name="maas_subnets",
            description="All subnets.",
            uri_pattern="maas://subnets",
            handler=subnets,
        ),
        ResourceInfo(
            name="maas_subnet",
            description="One subnet, by id or percent-encoded CIDR.",
            uri_pattern="maas://subnets/{subnet_id}",
            handler=subnet,
        ),
        ResourceInfo(
            name="maas_zone",
            description="One availability zone.",
            uri_pattern="maas://zones/{zone_id}",
            handler=zone,
        ),
    ]


def tag_resources(backend: BackendClient) -> list[ResourceInfo]:
    """Tag views."""

    async def tags(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.list_tags(cancel=cancel)

    async def tag(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.get_tag(_param(params, "tag_name"), cancel=cancel)

    async def tag_machines(params: Mapping[str, str], cancel: CancelToken) -> Any:
        return await backend.list_tag_machines(_param(params, "tag_name"), cancel=cancel)

    return [
        ResourceInfo(
            name="maas_tags",
            description="All tags.",
            uri_pattern="maas://tags",
            handler=tags,
        ),
        ResourceInfo(
            name="maas_tag",
            description="One tag.",
            uri_pattern="maas://tags/{tag_name}",
            handler=tag,
        ),
        ResourceInfo(
            name="maas_tag_machines",
            description="Machines carrying a tag.",
            uri_pattern="maas://tags/{tag_name}/machines",
            handler=tag_machines,
        ),
    ]


def storage_resources(backend: Any) -> list[ResourceInfo]:
    """Read-only storage views for backends that support them.

    The storage protocols are optional; a backend implementing none of them
    contributes no resources.
    """
    out: list[ResourceInfo] = []

    if isinstance(backend, BlockDeviceClient):

        async def block_devices(params: Mapping[str, str], cancel: CancelToken) -> Any:
            return await backend.list_block_devices(_param(params, "system_id"), cancel=cancel)

        out.append(
            ResourceInfo(
                name="maas_machine_block_devices",
                description="Block devices of one machine.",
                uri_pattern="maas://machine/{system_id}/block-devices",
                handler=block_devices,
            )
        )

    if isinstance(backend, VolumeGroupClient):

        async def volume_groups(params: Mapping[str, str], cancel: CancelToken) -> Any:
            return await backend.list_volume_groups(_param(params, "system_id"), cancel=cancel)

        out.append(
            ResourceInfo(
                name="maas_machine_volume_groups",
                description="LVM volume groups of one machine.",
                uri_pattern="maas://machine/{system_id}/volume-groups",
                handler=volume_groups,
            )
        )

    if isinstance(backend, RAIDClient):

        async def raids(params: Mapping[str, str], cancel: CancelToken) -> Any:
            return await backend.list_raids(_param(params, "system_id"), cancel=cancel)

        out.append(
            ResourceInfo(
                name="maas_machine_raids",
                description="Software RAID arrays of one machine.",
                uri_pattern="maas://machine/{system_id}/raids",
                handler=raids,
            )
        )

    return out
