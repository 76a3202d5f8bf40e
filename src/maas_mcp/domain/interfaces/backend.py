# src/maas_mcp/domain/interfaces/backend.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""
Provisioning backend capability interfaces.

Purpose:
- Define the operation sets the MCP tools depend on, independent of the
  transport used to reach MAAS.
- Keep tool handlers testable against in-memory fakes.

Layer: domain

Notes:
- Payloads are passed through as JSON-like mappings; the bridge does not
  model machine hardware.
- Every operation accepts an optional ``cancel`` token. Implementations must
  stop retrying and raise ``OperationCanceledError`` once it fires.
- Implementations translate transport failures into ``UpstreamError``,
  ``NotFoundError`` or ``ValidationError``.
- Block device, volume-group and RAID listings are read-only and optional;
  they surface as ``maas://machine/{system_id}/...`` resources, never as tools.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from maas_mcp.infrastructure.resilience.cancellation import CancelToken

JSONObject = dict[str, Any]


class MachineClient(Protocol):
    """Machine lifecycle operations."""

    async def list_machines(
        self, filters: Mapping[str, Any] | None = None, *, cancel: CancelToken | None = None
    ) -> list[JSONObject]:
        """List machines, optionally filtered (hostname, zone, pool, status, tags...)."""

    async def get_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Return one machine.

        Raises:
            NotFoundError: If ``system_id`` is unknown.
        """

    async def allocate_machine(
        self, constraints: Mapping[str, Any] | None = None, *, cancel: CancelToken | None = None
    ) -> JSONObject:
        """Allocate a ready machine matching ``constraints``."""

    async def deploy_machine(
        self,
        system_id: str,
        options: Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> JSONObject:
        """Deploy an allocated machine (distro_series, user_data, hwe_kernel...)."""

    async def release_machine(
        self, system_id: str, comment: str | None = None, *, cancel: CancelToken | None = None
    ) -> JSONObject:
        """Release a machine back to the pool."""

    async def power_on_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Power a machine on."""

    async def power_off_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Power a machine off."""

    async def get_power_state(self, system_id: str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Query the BMC for the current power state."""


class NetworkClient(Protocol):
    """Subnet, VLAN and interface queries."""

    async def list_subnets(
        self, fabric_id: int | None = None, *, cancel: CancelToken | None = None
    ) -> list[JSONObject]:
        """List subnets, optionally restricted to one fabric."""

    async def get_subnet(self, subnet_id: int | str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Return one subnet by id or CIDR."""

    async def list_vlans(self, fabric_id: int, *, cancel: CancelToken | None = None) -> list[JSONObject]:
        """List the VLANs of a fabric."""

    async def get_machine_interfaces(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[JSONObject]:
        """List the network interfaces of a machine."""


class TagClient(Protocol):
    """Tag management."""

    async def list_tags(self, *, cancel: CancelToken | None = None) -> list[JSONObject]:
        """List all tags."""

    async def get_tag(self, name: str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Return one tag by name."""

    async def create_tag(
        self,
        name: str,
        *,
        comment: str | None = None,
        definition: str | None = None,
        kernel_opts: str | None = None,
        cancel: CancelToken | None = None,
    ) -> JSONObject:
        """Create a tag."""

    async def update_tag_nodes(
        self,
        name: str,
        *,
        add: Sequence[str] = (),
        remove: Sequence[str] = (),
        cancel: CancelToken | None = None,
    ) -> JSONObject:
        """Apply the tag to ``add`` and remove it from ``remove`` (system ids)."""

    async def delete_tag(self, name: str, *, cancel: CancelToken | None = None) -> None:
        """Delete a tag."""

    async def list_tag_machines(self, name: str, *, cancel: CancelToken | None = None) -> list[JSONObject]:
        """List the machines carrying a tag."""


class ZoneClient(Protocol):
    """Availability zone queries."""

    async def get_zone(self, zone_id: int | str, *, cancel: CancelToken | None = None) -> JSONObject:
        """Return one zone by id or name."""


@runtime_checkable
class BlockDeviceClient(Protocol):
    """Block device queries (exposed as resources only)."""

    async def list_block_devices(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[JSONObject]:
        """List the block devices of a machine."""


@runtime_checkable
class VolumeGroupClient(Protocol):
    """LVM volume groups (exposed as resources only)."""

    async def list_volume_groups(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[JSONObject]:
        """List the volume groups of a machine."""


@runtime_checkable
class RAIDClient(Protocol):
    """Software RAID (exposed as resources only)."""

    async def list_raids(self, system_id: str, *, cancel: CancelToken | None = None) -> list[JSONObject]:
        """List the RAID sets of a machine."""


class BackendClient(MachineClient, NetworkClient, TagClient, ZoneClient, Protocol):
    """Union of the capability sets the MCP tools use."""
