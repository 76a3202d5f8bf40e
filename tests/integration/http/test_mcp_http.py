# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""HTTP transport tests against the full app with a fake MAAS backend."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from maas_mcp.adapters.routers.mcp_router import mcp_call_tool, mcp_request
from maas_mcp.config.settings import Settings
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.main import create_app
from maas_mcp.mcp.dispatcher import Dispatcher
from maas_mcp.mcp.registry import Registry, ToolInfo

pytestmark = pytest.mark.integration


def _rpc(method: str, params: Any = None, rid: Any = 1) -> dict[str, Any]:
    body: dict[str, Any] = {"jsonrpc": "2.0", "method": method, "id": rid}
    if params is not None:
        body["params"] = params
    return body


# -----------------------------------------------------------------------------
# POST /mcp
# -----------------------------------------------------------------------------


def test_jsonrpc_tool_call_returns_result(client: TestClient) -> None:
    r = client.post("/mcp", json=_rpc("maas_list_machines", {}, rid="req-1"))

    assert r.status_code == 200
    body = r.json()
    assert body["id"] == "req-1"
    assert [m["system_id"] for m in body["result"]] == ["abc123", "def456"]


def test_unknown_method_is_200_with_jsonrpc_error(client: TestClient) -> None:
    r = client.post("/mcp", json=_rpc("maas_reticulate_splines"))

    assert r.status_code == 200
    assert r.json()["error"]["code"] == -32601


def test_tool_call_envelope_missing_name_is_tool_error(client: TestClient) -> None:
    r = client.post("/mcp", json={"type": "tool_call", "tool": "create_tag", "params": {}})

    assert r.status_code == 200
    body = r.json()
    assert body["isError"] is True
    assert "name" in body["content"][0]["text"]


def test_resource_access_unknown_uri_is_error_body(client: TestClient) -> None:
    r = client.post("/mcp", json={"type": "resource_access", "uri": "invalid://uri"})

    assert r.status_code == 200
    body = r.json()
    assert body["isError"] is True
    assert "URI" in body["error"]


def test_resource_access_success(client: TestClient) -> None:
    r = client.post("/mcp", json={"type": "resource_access", "uri": "maas://tags/gpu"})

    content = r.json()["contents"][0]
    assert content["uri"] == "maas://tags/gpu"
    assert content["mimeType"] == "application/json"
    assert json.loads(content["text"])["name"] == "gpu"


def test_non_json_body_is_400_parse_error(client: TestClient) -> None:
    r = client.post("/mcp", content=b"this is not json", headers={"Content-Type": "text/plain"})

    assert r.status_code == 400
    body = r.json()
    assert body["error"]["code"] == -32700
    assert body["id"] is None
    assert body["error"]["data"]["correlation_id"] == r.headers["X-Correlation-ID"]


def test_notification_is_accepted_without_body(client: TestClient) -> None:
    r = client.post("/mcp", json={"jsonrpc": "2.0", "method": "notifications/initialized"})

    assert r.status_code == 202
    assert r.content == b""


def test_error_data_carries_request_correlation_id(client: TestClient) -> None:
    r = client.post(
        "/mcp",
        json=_rpc("maas_get_machine_details", {"system_id": "missing"}),
        headers={"X-Correlation-ID": "trace-42"},
    )

    assert r.headers["X-Correlation-ID"] == "trace-42"
    assert r.json()["error"]["data"]["correlation_id"] == "trace-42"


def test_strict_mode_rejects_missing_version(make_settings: Callable[..., Settings], fake_backend: Any) -> None:
    app = create_app(make_settings(MCP_STRICT_JSONRPC=True), backend=fake_backend)

    with TestClient(app) as c:
        r = c.post("/mcp", json={"method": "ping", "id": 3})

    assert r.status_code == 200
    assert r.json()["error"]["code"] == -32600
    assert r.json()["id"] == 3


# -----------------------------------------------------------------------------
# POST /mcp/{tool_name}
# -----------------------------------------------------------------------------


def test_legacy_tool_route_accepts_params_body(client: TestClient, fake_backend: Any) -> None:
    r = client.post("/mcp/create_tag", json={"name": "ssd", "comment": "fast"})

    assert r.status_code == 200
    body = r.json()
    assert "isError" not in body
    assert json.loads(body["content"][0]["text"])["name"] == "ssd"
    assert "ssd" in fake_backend.tags


def test_legacy_tool_route_empty_body_is_empty_params(client: TestClient) -> None:
    r = client.post("/mcp/maas_list_tags")

    assert r.status_code == 200
    assert json.loads(r.json()["content"][0]["text"])[0]["name"] == "gpu"


def test_legacy_tool_route_validation_failure(client: TestClient) -> None:
    r = client.post("/mcp/maas_create_tag", json={})

    assert r.status_code == 200
    assert r.json()["isError"] is True
    assert "missing required field 'name'" in r.json()["content"][0]["text"]


# -----------------------------------------------------------------------------
# GET /mcp, /mcp/sse
# -----------------------------------------------------------------------------


def test_discovery_as_json(client: TestClient) -> None:
    r = client.get("/mcp")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/json")
    tools = {t["name"] for t in r.json()["result"]["capabilities"]["tools"]}
    assert "maas_list_machines" in tools


@pytest.mark.parametrize(
    ("path", "headers"),
    [
        ("/mcp", {"Accept": "text/event-stream"}),
        ("/mcp?stream=true", {}),
        ("/mcp/sse", {}),
    ],
)
def test_discovery_as_sse(client: TestClient, path: str, headers: dict[str, str]) -> None:
    r = client.get(path, headers=headers)

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.text.startswith("data: ")
    assert r.text.endswith("\n\n")
    doc = json.loads(r.text[len("data: ") :])
    assert doc["result"]["serverInfo"]["name"] == "maas-mcp-server"


# -----------------------------------------------------------------------------
# Ambient surface
# -----------------------------------------------------------------------------


def test_health(client: TestClient) -> None:
    r = client.get("/health")

    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "maas-mcp-server", "version": "1.0.0"}


def test_cors_headers_for_browser_origin(client: TestClient) -> None:
    r = client.get("/health", headers={"Origin": "https://ui.example"})

    assert r.headers["access-control-allow-origin"] == "*"


def test_unsafe_correlation_id_is_replaced(client: TestClient) -> None:
    r = client.get("/health", headers={"X-Correlation-ID": "no spaces allowed"})

    assert r.headers["X-Correlation-ID"] != "no spaces allowed"


def test_unknown_route_is_jsonrpc_shaped_404(client: TestClient) -> None:
    r = client.get("/nowhere")

    assert r.status_code == 404
    err = r.json()["error"]
    assert err["code"] == -32600
    assert err["data"]["status"] == 404
    assert err["data"]["correlation_id"] == r.headers["X-Correlation-ID"]


def test_metrics_exposes_mcp_and_http_families(client: TestClient) -> None:
    client.post("/mcp", json=_rpc("ping"))

    r = client.get("/metrics")

    assert r.status_code == 200
    assert 'mcp_requests_total{transport="http",method="ping",outcome="success"} 1.0' in r.text
    assert 'http_requests_total{method="POST",route="/mcp",status="200"}' in r.text


def test_metrics_route_absent_when_disabled(
    make_settings: Callable[..., Settings], fake_backend: Any
) -> None:
    app = create_app(make_settings(METRICS_ENABLED=False), backend=fake_backend)

    with TestClient(app) as c:
        assert c.get("/metrics").status_code == 404


def test_unhandled_exception_is_500_with_internal_error(app: Any) -> None:
    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("secret detail")

    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/boom", headers={"X-Correlation-ID": "cid-500"})

    assert r.status_code == 500
    body = r.json()
    assert body["error"]["code"] == -32603
    assert body["error"]["data"]["correlation_id"] == "cid-500"
    assert "secret detail" not in r.text


# -----------------------------------------------------------------------------
# Client disconnect
# -----------------------------------------------------------------------------


def _hung_up_request(path: str, body: bytes, dispatcher: Dispatcher) -> Request:
    """A POST whose client disconnects right after sending the body."""
    messages = [{"type": "http.request", "body": body, "more_body": False}]

    async def receive() -> dict[str, Any]:
        return messages.pop(0) if messages else {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "root_path": "",
        "query_string": b"",
        "headers": [(b"content-type", b"application/json")],
        "app": SimpleNamespace(state=SimpleNamespace(dispatcher=dispatcher)),
    }
    return Request(scope, receive)


def _waiting_dispatcher(seen: list[bool]) -> Dispatcher:
    async def _wait_for_cancel(params: Any, cancel: CancelToken) -> Any:
        seen.append(await cancel.wait(5.0))
        cancel.raise_if_cancelled()
        return "finished"

    reg = Registry()
    reg.register_tool(
        ToolInfo(name="slow_op", description="", input_schema={}, handler=_wait_for_cancel)
    )
    return Dispatcher(reg, server_name="s", server_version="1")


@pytest.mark.anyio
async def test_disconnect_cancels_legacy_tool_call() -> None:
    seen: list[bool] = []
    request = _hung_up_request("/mcp/slow_op", b"{}", _waiting_dispatcher(seen))

    started = time.perf_counter()
    response = await mcp_call_tool("slow_op", request)

    assert time.perf_counter() - started < 2.0
    assert seen == [True]
    assert json.loads(response.body)["isError"] is True


@pytest.mark.anyio
async def test_disconnect_cancels_jsonrpc_request() -> None:
    seen: list[bool] = []
    body = json.dumps(_rpc("slow_op", {}, rid=9)).encode()
    request = _hung_up_request("/mcp", body, _waiting_dispatcher(seen))

    response = await mcp_request(request)

    assert seen == [True]
    payload = json.loads(response.body)
    assert payload["id"] == 9
    assert "error" in payload
