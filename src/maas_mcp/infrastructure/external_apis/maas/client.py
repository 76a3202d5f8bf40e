# src/maas_mcp/infrastructure/external_apis/maas/client.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MAAS API 2.0 Transport Client: async, retried, instrumented.

This transport implements the backend capability protocols and provides:

* Async HTTP (httpx) with a per-request timeout.
* OAuth 1.0 PLAINTEXT signing from a ``consumer:token:secret`` API key.
* Fixed-count, fixed-delay retries that stop on cancellation.
* Deterministic mapping of HTTP statuses to domain errors.
* Prometheus counters for calls and retries.

Status mapping:
    404            -> NotFoundError        (not retried)
    400/409/422    -> ValidationError      (not retried)
    401/403        -> UpstreamError        (not retried)
    429/5xx        -> UpstreamError        (retried)
    network errors -> UpstreamError        (retried)

Return shapes are the decoded MAAS JSON payloads, passed through unchanged.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Final
from urllib.parse import quote

import httpx

from maas_mcp.config.settings import Settings
from maas_mcp.domain.exceptions.mcp import NotFoundError, UpstreamError, ValidationError
from maas_mcp.infrastructure.logging.logger import get_correlation_id, get_json_logger
from maas_mcp.infrastructure.observability.metrics import (
    get_maas_upstream_requests_total,
    get_maas_upstream_retries_total,
)
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.infrastructure.resilience.retry import RetryPolicy, retry

logger = get_json_logger(__name__)

_DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "User-Agent": "maas-mcp-client/1.0",
}
_CORRELATION_HEADER: Final[str] = "X-Correlation-ID"
_MAX_ERROR_BODY: Final[int] = 500


def parse_api_key(api_key: str) -> tuple[str, str, str]:
    """Split a MAAS API key into ``(consumer_key, token_key, token_secret)``.

    Raises:
        ValueError: If the key does not have exactly three non-empty parts.
    """
    parts = api_key.split(":")
    if len(parts) != 3 or not all(parts):
        raise ValueError("MAAS API key must have the form 'consumer_key:token_key:token_secret'")
    return parts[0], parts[1], parts[2]


def build_oauth_header(
    api_key: str, *, nonce: str | None = None, timestamp: int | None = None
) -> str:
    """Return an OAuth 1.0 PLAINTEXT ``Authorization`` header value.

    Args:
        api_key: MAAS API key ``consumer_key:token_key:token_secret``.
        nonce: Override for the random nonce (tests).
        timestamp: Override for the UNIX timestamp (tests).
    """
    consumer_key, token_key, token_secret = parse_api_key(api_key)
    params = {
        "oauth_version": "1.0",
        "oauth_signature_method": "PLAINTEXT",
        "oauth_consumer_key": consumer_key,
        "oauth_token": token_key,
        # PLAINTEXT signature: "<consumer_secret>&<token_secret>"; MAAS consumer secret is empty.
        "oauth_signature": f"&{token_secret}",
        "oauth_nonce": nonce or uuid.uuid4().hex,
        "oauth_timestamp": str(timestamp if timestamp is not None else int(time.time())),
    }
    return "OAuth " + ", ".join(f'{k}="{quote(v, safe="")}"' for k, v in params.items())


def _compact(values: Mapping[str, Any] | None) -> dict[str, Any]:
    """Drop ``None`` values so they are not sent as empty form fields."""
    return {k: v for k, v in (values or {}).items() if v is not None}


def _segment(value: int | str) -> str:
    return quote(str(value), safe=":")


class MaasClient:
    """Resilient, instrumented transport client for the MAAS REST API."""

    def __init__(
        self,
        settings: Settings,
        *,
        http: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the transport client.

        Args:
            settings: Application settings (base URL, API key, timeout, retry).
            http: Optional shared ``httpx.AsyncClient``. If omitted, a client
                is created and owned by this instance.
            retry_policy: Optional retry configuration. When omitted it is
                built from ``maas_retry_attempts`` and ``maas_retry_delay_s``.

        Raises:
            ValueError: If the API key is malformed.
        """
        self._base_url = settings.maas_base_url()
        self._api_key = settings.maas_api_key.get_secret_value()
        parse_api_key(self._api_key)

        self._owns_client = http is None
        self._client = http or httpx.AsyncClient(
            timeout=settings.maas_timeout_s,
            headers=_DEFAULT_HEADERS.copy(),
        )
        if http is not None:
            for key, value in _DEFAULT_HEADERS.items():
                self._client.headers.setdefault(key, value)

        self._retry = retry_policy or RetryPolicy(
            attempts=settings.maas_retry_attempts,
            delay_s=settings.maas_retry_delay_s,
        )
        self._calls_total = get_maas_upstream_requests_total()
        self._retries_total = get_maas_upstream_retries_total()

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance owns it."""
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> MaasClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ---------------------------- Machines ----------------------------- #

    async def list_machines(
        self, filters: Mapping[str, Any] | None = None, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        return await self._get("machines/", op="list_machines", params=_compact(filters), cancel=cancel)

    async def get_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        return await self._get(f"machines/{_segment(system_id)}/", op="get_machine", cancel=cancel)

    async def allocate_machine(
        self, constraints: Mapping[str, Any] | None = None, *, cancel: CancelToken | None = None
    ) -> dict[str, Any]:
        return await self._post(
            "machines/", op="allocate", data=_compact(constraints), cancel=cancel
        )

    async def deploy_machine(
        self,
        system_id: str,
        options: Mapping[str, Any] | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        return await self._post(
            f"machines/{_segment(system_id)}/", op="deploy", data=_compact(options), cancel=cancel
        )

    async def release_machine(
        self, system_id: str, comment: str | None = None, *, cancel: CancelToken | None = None
    ) -> dict[str, Any]:
        return await self._post(
            f"machines/{_segment(system_id)}/",
            op="release",
            data=_compact({"comment": comment}),
            cancel=cancel,
        )

    async def power_on_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        return await self._post(f"machines/{_segment(system_id)}/", op="power_on", cancel=cancel)

    async def power_off_machine(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        return await self._post(f"machines/{_segment(system_id)}/", op="power_off", cancel=cancel)

    async def get_power_state(self, system_id: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        return await self._get(
            f"machines/{_segment(system_id)}/",
            op="get_power_state",
            params={"op": "query_power_state"},
            cancel=cancel,
        )

    # ---------------------------- Networks ----------------------------- #

    async def list_subnets(
        self, fabric_id: int | None = None, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        subnets: list[dict[str, Any]] = await self._get("subnets/", op="list_subnets", cancel=cancel)
        if fabric_id is None:
            return subnets
        # The subnets endpoint has no fabric filter; the VLAN carries it.
        return [s for s in subnets if (s.get("vlan") or {}).get("fabric_id") == fabric_id]

    async def get_subnet(self, subnet_id: int | str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        ref = str(subnet_id)
        if "/" in ref and not ref.startswith("cidr:"):
            ref = f"cidr:{ref}"
        return await self._get(f"subnets/{_segment(ref)}/", op="get_subnet", cancel=cancel)

    async def list_vlans(self, fabric_id: int, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        return await self._get(f"fabrics/{_segment(fabric_id)}/vlans/", op="list_vlans", cancel=cancel)

    async def get_machine_interfaces(
        self, system_id: str, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        return await self._get(
            f"nodes/{_segment(system_id)}/interfaces/", op="get_machine_interfaces", cancel=cancel
        )

    # ------------------------------ Tags ------------------------------- #

    async def list_tags(self, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        return await self._get("tags/", op="list_tags", cancel=cancel)

    async def get_tag(self, name: str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        return await self._get(f"tags/{_segment(name)}/", op="get_tag", cancel=cancel)

    async def create_tag(
        self,
        name: str,
        *,
        comment: str | None = None,
        definition: str | None = None,
        kernel_opts: str | None = None,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        data = _compact(
            {"name": name, "comment": comment, "definition": definition, "kernel_opts": kernel_opts}
        )
        return await self._request("POST", "tags/", op="create_tag", data=data, cancel=cancel)

    async def update_tag_nodes(
        self,
        name: str,
        *,
        add: Sequence[str] = (),
        remove: Sequence[str] = (),
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if add:
            data["add"] = list(add)
        if remove:
            data["remove"] = list(remove)
        return await self._post(f"tags/{_segment(name)}/", op="update_nodes", data=data, cancel=cancel)

    async def delete_tag(self, name: str, *, cancel: CancelToken | None = None) -> None:
        await self._request("DELETE", f"tags/{_segment(name)}/", op="delete_tag", cancel=cancel)

    async def list_tag_machines(self, name: str, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        return await self._get(
            f"tags/{_segment(name)}/", op="list_tag_machines", params={"op": "machines"}, cancel=cancel
        )

    # --------------------------- Zones/storage -------------------------- #

    async def get_zone(self, zone_id: int | str, *, cancel: CancelToken | None = None) -> dict[str, Any]:
        return await self._get(f"zones/{_segment(zone_id)}/", op="get_zone", cancel=cancel)

    async def list_block_devices(self, system_id: str, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        return await self._get(
            f"nodes/{_segment(system_id)}/blockdevices/", op="list_block_devices", cancel=cancel
        )

    async def list_volume_groups(self, system_id: str, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        return await self._get(
            f"nodes/{_segment(system_id)}/volume-groups/", op="list_volume_groups", cancel=cancel
        )

    async def list_raids(self, system_id: str, *, cancel: CancelToken | None = None) -> list[dict[str, Any]]:
        return await self._get(f"nodes/{_segment(system_id)}/raids/", op="list_raids", cancel=cancel)

    # ---------------------------- Internals ---------------------------- #

    async def _get(
        self,
        path: str,
        *,
        op: str,
        params: Mapping[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        return await self._request("GET", path, op=op, params=params, cancel=cancel)

    async def _post(
        self,
        path: str,
        *,
        op: str,
        data: Mapping[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        """POST a MAAS named operation (``?op=<op>``)."""
        return await self._request("POST", path, op=op, params={"op": op}, data=data, cancel=cancel)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        op: str,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> Any:
        """Execute one logical MAAS call under the retry policy.

        Returns:
            Decoded JSON body, or ``None`` for empty responses.

        Raises:
            NotFoundError: On HTTP 404.
            ValidationError: On HTTP 400/409/422.
            UpstreamError: On other failures, after retries where applicable.
            RetryExhaustedError: When every attempt failed with a retryable error.
            OperationCanceledError: If ``cancel`` fires.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"

        async def _call() -> Any:
            headers = {"Authorization": build_oauth_header(self._api_key)}
            cid = get_correlation_id()
            if cid:
                headers[_CORRELATION_HEADER] = cid
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=dict(params) if params else None,
                    data=dict(data) if data else None,
                    headers=headers,
                )
            except httpx.RequestError as exc:
                self._calls_total.labels(op, "transport_error").inc()
                raise UpstreamError(
                    f"MAAS {op} request failed: {exc.__class__.__name__}: {exc}",
                    retryable=True,
                    details={"operation": op},
                ) from exc

            self._calls_total.labels(op, str(response.status_code)).inc()
            self._raise_for_status(response, op)

            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise UpstreamError(
                    f"MAAS {op} returned a non-JSON response",
                    status_code=response.status_code,
                    retryable=False,
                    details={"operation": op},
                ) from exc

        def _on_retry(attempt: int, exc: Exception) -> None:
            self._retries_total.labels(op).inc()

        return await retry(
            _call, policy=self._retry, cancel=cancel, on_retry=_on_retry, name=f"maas.{op}"
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, op: str) -> None:
        """Raise domain exceptions for error statuses."""
        status = response.status_code
        if status < 400:
            return

        body = response.text[:_MAX_ERROR_BODY].strip()
        details = {"operation": op, "status_code": status}
        logger.warning("maas.upstream_error_status", extra=details)
        if status == 404:
            raise NotFoundError(f"MAAS {op}: not found", details=details)
        if status in (400, 409, 422):
            raise ValidationError(f"MAAS rejected {op}: {body or status}", details=details)
        if status in (401, 403):
            raise UpstreamError(
                f"MAAS {op}: authentication failed ({status})",
                status_code=status,
                retryable=False,
                details=details,
            )
        raise UpstreamError(
            f"MAAS {op} failed with HTTP {status}: {body}".rstrip(": "),
            status_code=status,
            retryable=status == 429 or status >= 500,
            details=details,
        )
