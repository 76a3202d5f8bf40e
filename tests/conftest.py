# tests/conftest.py
from __future__ import annotations

import copy
from collections.abc import Callable, Generator, Mapping, Sequence
from typing import Any

import prometheus_client as prom
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from maas_mcp.config.settings import Settings, get_settings
from maas_mcp.domain.exceptions.mcp import NotFoundError, ValidationError
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.main import create_app
from maas_mcp.mcp.capabilities.catalog import register_default_capabilities
from maas_mcp.mcp.dispatcher import Dispatcher
from maas_mcp.mcp.registry import Registry

TEST_API_KEY = "consumer:token:secret"
TEST_MAAS_URL = "http://maas.test:5240/MAAS/api/2.0"


@pytest.fixture
def anyio_backend() -> str:
    """Run anyio-marked tests on asyncio only."""
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_prometheus_registry(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Give every test its own default Prometheus registry."""
    monkeypatch.setattr(prom, "REGISTRY", prom.CollectorRegistry(auto_describe=True))
    yield


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build ``Settings`` from env-style keys without reading the environment."""

    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "ENVIRONMENT": "test",
            "MAAS_API_URL": TEST_MAAS_URL,
            "MAAS_API_KEY": TEST_API_KEY,
            "MAAS_RETRY_DELAY_S": 0,
        }
        values.update(overrides)
        return Settings.model_validate(values)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


# -----------------------------------------------------------------------------
# Fake MAAS backend
# -----------------------------------------------------------------------------


class FakeBackend:
    """In-memory MAAS backend recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.fail_with: Exception | None = None
        self.machines: dict[str, dict[str, Any]] = {
            "abc123": {
                "system_id": "abc123",
                "hostname": "node1",
                "status_name": "Ready",
                "power_state": "off",
                "zone": {"name": "default"},
            },
            "def456": {
                "system_id": "def456",
                "hostname": "node2",
                "status_name": "Deployed",
                "power_state": "on",
                "zone": {"name": "rack2"},
            },
        }
        self.subnets: dict[int, dict[str, Any]] = {
            1: {"id": 1, "cidr": "10.0.0.0/24", "vlan": {"fabric_id": 0, "vid": 0}},
            2: {"id": 2, "cidr": "10.1.0.0/24", "vlan": {"fabric_id": 1, "vid": 10}},
        }
        self.tags: dict[str, dict[str, Any]] = {
            "gpu": {"name": "gpu", "comment": "GPU nodes", "definition": "", "kernel_opts": ""},
        }
        self.tag_nodes: dict[str, set[str]] = {"gpu": {"abc123"}}

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        kwargs.pop("cancel", None)
        self.calls.append((name, args, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    def _machine(self, system_id: str) -> dict[str, Any]:
        try:
            return self.machines[system_id]
        except KeyError:
            raise NotFoundError(f"machine {system_id} not found") from None

    # Machines

    async def list_machines(
        self, filters: Mapping[str, Any] | None = None, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        self._record("list_machines", filters)
        items = list(self.machines.values())
        for key, value in (filters or {}).items():
            items = [m for m in items if m.get(key) == value]
        return copy.deepcopy(items)

    async def get_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("get_machine", system_id)
        return copy.deepcopy(self._machine(system_id))

    async def allocate_machine(
        self, constraints: Mapping[str, Any] | None = None, *, cancel: CancelToken | None = None
    ) -> dict[str, Any]:
        self._record("allocate_machine", dict(constraints or {}))
        machine = self._machine("abc123")
        machine["status_name"] = "Allocated"
        return copy.deepcopy(machine)

    async def deploy_machine(
        self,
        system_id: str,
        options: Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        self._record("deploy_machine", system_id, dict(options or {}))
        machine = self._machine(system_id)
        machine["status_name"] = "Deploying"
        return copy.deepcopy(machine)

    async def release_machine(
        self, system_id: str, comment: str | None = None, *, cancel: CancelToken | None = None
    ) -> dict[str, Any]:
        self._record("release_machine", system_id, comment)
        machine = self._machine(system_id)
        machine["status_name"] = "Releasing"
        return copy.deepcopy(machine)

    async def power_on_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("power_on_machine", system_id)
        machine = self._machine(system_id)
        machine["power_state"] = "on"
        return copy.deepcopy(machine)

    async def power_off_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("power_off_machine", system_id)
        machine = self._machine(system_id)
        machine["power_state"] = "off"
        return copy.deepcopy(machine)

    async def get_power_state(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("get_power_state", system_id)
        return {"state": self._machine(system_id)["power_state"]}

    # Networks

    async def list_subnets(
        self, fabric_id: int | None = None, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        self._record("list_subnets", fabric_id)
        items = list(self.subnets.values())
        if fabric_id is not None:
            items = [s for s in items if s["vlan"]["fabric_id"] == fabric_id]
        return copy.deepcopy(items)

    async def get_subnet(self, subnet_id: int | str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("get_subnet", subnet_id)
        for subnet in self.subnets.values():
            if subnet["id"] == subnet_id or subnet["cidr"] == subnet_id:
                return copy.deepcopy(subnet)
        raise NotFoundError(f"subnet {subnet_id} not found")

    async def list_vlans(self, fabric_id: int, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        self._record("list_vlans", fabric_id)
        return [{"fabric_id": fabric_id, "vid": 0, "name": "untagged"}]

    async def get_machine_interfaces(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        self._record("get_machine_interfaces", system_id)
        self._machine(system_id)
        return [{"name": "eth0", "mac_address": "52:54:00:00:00:01"}]

    # Tags

    async def list_tags(self, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        self._record("list_tags")
        return copy.deepcopy(list(self.tags.values()))

    async def get_tag(self, name: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("get_tag", name)
        if name not in self.tags:
            raise NotFoundError(f"tag {name} not found")
        return copy.deepcopy(self.tags[name])

    async def create_tag(
        self,
        name: str,
        *,
        comment: str | None = None,
        definition: str | None = None,
        kernel_opts: str | None = None,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        self._record(
            "create_tag", name, comment=comment, definition=definition, kernel_opts=kernel_opts
        )
        if name in self.tags:
            raise ValidationError(f"tag {name} already exists")
        tag = {
            "name": name,
            "comment": comment or "",
            "definition": definition or "",
            "kernel_opts": kernel_opts or "",
        }
        self.tags[name] = tag
        self.tag_nodes[name] = set()
        return copy.deepcopy(tag)

    async def update_tag_nodes(
        self,
        name: str,
        *,
        add: Sequence[str] = (),
        remove: Sequence[str] = (),
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        self._record("update_tag_nodes", name, add=list(add), remove=list(remove))
        if name not in self.tags:
            raise NotFoundError(f"tag {name} not found")
        nodes = self.tag_nodes[name]
        nodes.update(add)
        nodes.difference_update(remove)
        return {"added": len(add), "removed": len(remove)}

    async def delete_tag(self, name: str, *, cancel: CancelToken | None = None) -> None:
        self._record("delete_tag", name)
        if self.tags.pop(name, None) is None:
            raise NotFoundError(f"tag {name} not found")
        self.tag_nodes.pop(name, None)

    async def list_tag_machines(self, name: str, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        self._record("list_tag_machines", name)
        if name not in self.tags:
            raise NotFoundError(f"tag {name} not found")
        return [copy.deepcopy(self.machines[s]) for s in sorted(self.tag_nodes[name])]

    # Zones

    async def get_zone(self, zone_id: int | str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        self._record("get_zone", zone_id)
        return {"id": zone_id, "name": "default" if zone_id in (1, "default") else str(zone_id)}


class FakeStorageBackend(FakeBackend):
    """Fake backend that also implements the storage listings."""

    async def list_block_devices(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        self._record("list_block_devices", system_id)
        return [{"name": "sda", "size": 500107862016}]

    async def list_volume_groups(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        self._record("list_volume_groups", system_id)
        return [{"name": "vg0"}]

    async def list_raids(self, system_id: str, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        self._record("list_raids", system_id)
        return [{"name": "md0", "level": "raid-1"}]


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def storage_backend() -> FakeStorageBackend:
    return FakeStorageBackend()


@pytest.fixture
def registry(fake_backend: FakeBackend) -> Registry:
    return register_default_capabilities(Registry(), fake_backend)


@pytest.fixture
def dispatcher(registry: Registry) -> Dispatcher:
    return Dispatcher(registry, server_name="maas-mcp-test", server_version="9.9.9")


@pytest.fixture
def cancel() -> CancelToken:
    return CancelToken()


# -----------------------------------------------------------------------------
# HTTP app
# -----------------------------------------------------------------------------


@pytest.fixture
def app(settings: Settings, fake_backend: FakeBackend) -> FastAPI:
    return create_app(settings, backend=fake_backend)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
