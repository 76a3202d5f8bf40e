# src/maas_mcp/mcp/dispatcher.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""MCP Request Dispatcher.

Purpose:
    Turn one inbound message into one response, independent of transport.
    Every message goes through the same steps:

        parse -> resolve -> invoke -> respond

Supported inbound shapes:
    * JSON-RPC 2.0 ``{"jsonrpc", "method", "params", "id"}``. ``discover`` and
      the MCP built-ins (``initialize``, ``ping``, ``tools/list``,
      ``tools/call``, ``resources/list``, ``resources/read``) are handled
      here; any other method is a registered tool name.
    * Tool call ``{"type": "tool_call", "tool", "params"}``.
    * Resource access ``{"type": "resource_access", "uri"}``.

Error policy:
    * Protocol failures (parse, invalid envelope, unknown method) become
      JSON-RPC error objects with the reserved codes.
    * Tool failures (validation, upstream, not found, canceled) become
      ``-32000`` on JSON-RPC and ``isError`` bodies on the MCP shapes.
    * Anything unexpected is logged with its stack trace and surfaced as a
      generic internal error carrying only the correlation id.

Parsing leniency:
    With ``strict=False`` a missing ``jsonrpc`` member is filled in as
    ``"2.0"`` and a different value is accepted; both are logged as warnings.
    With ``strict=True`` either case is an invalid request.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Mapping
from typing import Any, Final

from maas_mcp.domain.exceptions.base import DomainError
from maas_mcp.domain.exceptions.mcp import (
    InternalError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ValidationError,
)
from maas_mcp.infrastructure.logging.logger import get_correlation_id, get_json_logger
from maas_mcp.infrastructure.observability.metrics import (
    get_mcp_request_duration_seconds,
    get_mcp_requests_total,
)
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.discovery import build_capabilities, build_discovery_document
from maas_mcp.mcp.registry import Registry
from maas_mcp.mcp.schemas.envelopes import (
    ResourceAccessError,
    ResourceAccessRequest,
    ResourceAccessResult,
    ResourceContent,
    ToolCallRequest,
    ToolCallResult,
)
from maas_mcp.mcp.schemas.jsonrpc import (
    JSONRPC_VERSION,
    JSONRPCError,
    JSONRPCErrorResponse,
    JSONRPCRequest,
    JSONRPCResponse,
    JSONRPCSuccess,
    RequestId,
)

logger = get_json_logger(__name__)

MCP_PROTOCOL_VERSION: Final[str] = "2024-11-05"

# Best-effort id recovery from a line that is not valid JSON.
_ID_RE: Final[re.Pattern[str]] = re.compile(
    r'"id"\s*:\s*("(?:[^"\\]|\\.)*"|-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)'
)

_MESSAGES: Final[dict[type[DomainError], str]] = {
    ParseError: "Parse error",
    InvalidRequestError: "Invalid Request",
    MethodNotFoundError: "Method not found",
    InternalError: "Internal error",
}

McpResponse = JSONRPCResponse | ToolCallResult | ResourceAccessResult | ResourceAccessError


def dumps_result(result: Any) -> str:
    """Serialize a tool result deterministically for text content blocks."""
    return json.dumps(result, sort_keys=True, separators=(",", ":"), default=str)


def recover_id(raw: str | bytes) -> RequestId:
    """Extract the ``id`` member from a malformed JSON text, if recognisable."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    m = _ID_RE.search(text)
    if not m:
        return None
    token = m.group(1)
    if token.startswith('"'):
        try:
            return str(json.loads(token))
        except ValueError:
            return None
    if token.lstrip("-").isdigit():
        return int(token)
    return float(token)


def _id_of(obj: Any) -> RequestId:
    if isinstance(obj, Mapping):
        rid = obj.get("id")
        if isinstance(rid, str | int | float) and not isinstance(rid, bool):
            return rid
    return None


class Dispatcher:
    """Transport-agnostic MCP dispatcher bound to one registry."""

    def __init__(
        self,
        registry: Registry,
        *,
        server_name: str,
        server_version: str,
        strict: bool = False,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Registry holding the tools and resources to serve.
            server_name: Name reported in discovery and ``initialize``.
            server_version: Version reported in discovery and ``initialize``.
            strict: Reject envelopes whose ``jsonrpc`` is missing or not "2.0".
        """
        self._registry = registry
        self._server_name = server_name
        self._server_version = server_version
        self._strict = strict

    @property
    def registry(self) -> Registry:
        return self._registry

    def capabilities(self) -> dict[str, Any]:
        """Return the discovery ``result`` payload."""
        return build_capabilities(
            self._registry, server_name=self._server_name, server_version=self._server_version
        )

    def discovery_document(self) -> dict[str, Any]:
        """Return the full discovery document served on ``GET /mcp``."""
        return build_discovery_document(
            self._registry, server_name=self._server_name, server_version=self._server_version
        )

    # ------------------------------------------------------------------ entry points

    async def handle_line(
        self, raw: str | bytes, *, cancel: CancelToken, transport: str = "stdio"
    ) -> McpResponse | None:
        """Decode one raw message and dispatch it.

        Returns:
            The response to write, or ``None`` for notifications.
        """
        try:
            obj = json.loads(raw)
        except ValueError as exc:
            logger.warning("mcp.parse_error", extra={"error": str(exc), "transport": transport})
            self._count(transport, "unknown", ParseError.kind)
            return self._error_response(ParseError(str(exc)), recover_id(raw))
        return await self.handle_payload(obj, cancel=cancel, transport=transport)

    async def handle_payload(
        self, obj: Any, *, cancel: CancelToken, transport: str = "http"
    ) -> McpResponse | None:
        """Dispatch an already-decoded JSON value by envelope shape."""
        if isinstance(obj, Mapping) and "method" not in obj:
            if obj.get("type") == "tool_call" or ("tool" in obj and "type" not in obj):
                return await self._handle_tool_call_envelope(obj, cancel, transport)
            if obj.get("type") == "resource_access" or ("uri" in obj and "type" not in obj):
                return await self._handle_resource_envelope(obj, cancel, transport)

        try:
            request = self.parse_request(obj)
        except InvalidRequestError as exc:
            self._count(transport, "unknown", exc.kind)
            return self._error_response(exc, _id_of(obj))

        if self._is_notification(obj, request):
            logger.debug("mcp.notification", extra={"method": request.method})
            return None
        return await self.handle_request(request, cancel=cancel, transport=transport)

    def parse_request(self, obj: Any) -> JSONRPCRequest:
        """Normalize a decoded JSON value into a :class:`JSONRPCRequest`.

        Raises:
            InvalidRequestError: If the value is not an acceptable envelope.
        """
        if not isinstance(obj, Mapping):
            raise InvalidRequestError("request must be a JSON object")

        method = obj.get("method")
        if not isinstance(method, str) or not method:
            raise InvalidRequestError("'method' must be a non-empty string")

        rid = obj.get("id")
        if rid is not None and (isinstance(rid, bool) or not isinstance(rid, str | int | float)):
            raise InvalidRequestError("'id' must be a string, number or null")

        version = obj.get("jsonrpc")
        if version is None:
            if self._strict:
                raise InvalidRequestError("missing 'jsonrpc' member")
            logger.warning("mcp.jsonrpc_missing", extra={"method": method})
        elif version != JSONRPC_VERSION:
            if self._strict:
                raise InvalidRequestError(f"unsupported jsonrpc version: {version!r}")
            logger.warning("mcp.jsonrpc_nonstandard", extra={"method": method, "jsonrpc": version})

        return JSONRPCRequest(
            jsonrpc=JSONRPC_VERSION, method=method, params=obj.get("params"), id=rid
        )

    async def handle_request(
        self, request: JSONRPCRequest, *, cancel: CancelToken, transport: str = "http"
    ) -> JSONRPCResponse:
        """Resolve and invoke a parsed JSON-RPC request."""
        started = time.perf_counter()
        label = request.method
        try:
            result = await self._resolve_and_invoke(request, cancel)
        except DomainError as exc:
            if isinstance(exc, MethodNotFoundError):
                label = "unknown"
            self._log_failure(request.method, exc)
            self._observe(transport, label, exc.kind, started)
            return self._error_response(exc, request.id)
        except Exception:
            logger.exception("mcp.internal_error", extra={"method": request.method})
            self._observe(transport, label, InternalError.kind, started)
            return self._error_response(InternalError("internal error"), request.id)

        self._observe(transport, label, "success", started)
        return JSONRPCSuccess(result=result, id=request.id)

    async def call_tool(
        self, name: str, params: Any, *, cancel: CancelToken, transport: str = "http"
    ) -> ToolCallResult:
        """Invoke a tool and wrap the outcome in the tool-call envelope."""
        started = time.perf_counter()
        try:
            result = await self.invoke_tool(name, params, cancel=cancel)
        except DomainError as exc:
            self._log_failure(name, exc)
            label = "unknown" if isinstance(exc, MethodNotFoundError) else name
            self._observe(transport, label, exc.kind, started)
            return ToolCallResult.failure(self._public_message(exc))
        except Exception:
            logger.exception("mcp.internal_error", extra={"method": name})
            self._observe(transport, name, InternalError.kind, started)
            return ToolCallResult.failure(self._public_message(InternalError("internal error")))

        self._observe(transport, name, "success", started)
        return ToolCallResult.success(dumps_result(result))

    async def read_resource(
        self, uri: str, *, cancel: CancelToken, transport: str = "http"
    ) -> ResourceAccessResult | ResourceAccessError:
        """Resolve a resource URI and wrap the outcome in the resource envelope."""
        started = time.perf_counter()
        try:
            contents = await self._read_contents(uri, cancel)
        except DomainError as exc:
            self._log_failure("resources/read", exc)
            self._observe(transport, "resources/read", exc.kind, started)
            return ResourceAccessError(error=self._public_message(exc))
        except Exception:
            logger.exception("mcp.internal_error", extra={"method": "resources/read", "uri": uri})
            self._observe(transport, "resources/read", InternalError.kind, started)
            return ResourceAccessError(error=self._public_message(InternalError("internal error")))

        self._observe(transport, "resources/read", "success", started)
        return contents

    async def invoke_tool(self, name: str, params: Any, *, cancel: CancelToken) -> Any:
        """Look up ``name`` and run its handler.

        Raises:
            MethodNotFoundError: If no tool is registered under ``name``.
            DomainError: Whatever the handler raises.
        """
        tool = self._registry.get_tool(name)
        if tool is None:
            raise MethodNotFoundError(name)
        cancel.raise_if_cancelled()
        return await tool.handler(params, cancel)

    # ------------------------------------------------------------------ internals

    async def _resolve_and_invoke(self, request: JSONRPCRequest, cancel: CancelToken) -> Any:
        method = request.method
        params = request.params

        if method == "discover":
            return self.capabilities()
        if method == "initialize":
            return {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "serverInfo": {"name": self._server_name, "version": self._server_version},
                "capabilities": {"tools": {}, "resources": {}},
            }
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": self.capabilities()["capabilities"]["tools"]}
        if method == "resources/list":
            return {"resources": self.capabilities()["capabilities"]["resources"]}
        if method == "tools/call":
            if not isinstance(params, Mapping) or not isinstance(params.get("name"), str):
                raise ValidationError("missing required field 'name'")
            try:
                result = await self.invoke_tool(
                    params["name"], params.get("arguments"), cancel=cancel
                )
            except MethodNotFoundError:
                raise
            except DomainError as exc:
                self._log_failure(params["name"], exc)
                return ToolCallResult.failure(self._public_message(exc)).to_wire()
            return ToolCallResult.success(dumps_result(result)).to_wire()
        if method == "resources/read":
            if not isinstance(params, Mapping) or not isinstance(params.get("uri"), str):
                raise ValidationError("missing required field 'uri'")
            return (await self._read_contents(params["uri"], cancel)).to_wire()

        return await self.invoke_tool(method, params, cancel=cancel)

    async def _read_contents(self, uri: str, cancel: CancelToken) -> ResourceAccessResult:
        resource, uri_params = self._registry.resolve_resource(uri)
        cancel.raise_if_cancelled()
        data = await resource.handler(uri_params, cancel)
        return ResourceAccessResult(
            contents=[ResourceContent(uri=uri, text=dumps_result(data), mime_type=resource.mime_type)]
        )

    async def _handle_tool_call_envelope(
        self, obj: Mapping[str, Any], cancel: CancelToken, transport: str
    ) -> ToolCallResult:
        try:
            envelope = ToolCallRequest.model_validate(obj)
        except ValueError:
            return ToolCallResult.failure("missing required field 'tool'")
        return await self.call_tool(envelope.tool, envelope.params, cancel=cancel, transport=transport)

    async def _handle_resource_envelope(
        self, obj: Mapping[str, Any], cancel: CancelToken, transport: str
    ) -> ResourceAccessResult | ResourceAccessError:
        try:
            envelope = ResourceAccessRequest.model_validate(obj)
        except ValueError:
            return ResourceAccessError(error="missing required field 'uri' (resource URI)")
        return await self.read_resource(envelope.uri, cancel=cancel, transport=transport)

    @staticmethod
    def _is_notification(obj: Any, request: JSONRPCRequest) -> bool:
        # JSON-RPC notifications omit "id"; only MCP notifications are treated
        # as such so that id-less legacy clients still receive responses.
        return (
            isinstance(obj, Mapping)
            and "id" not in obj
            and request.method.startswith("notifications/")
        )

    @staticmethod
    def _public_message(exc: DomainError) -> str:
        if isinstance(exc, InternalError):
            cid = get_correlation_id()
            return f"Internal error (correlation_id={cid})" if cid else "Internal error"
        return exc.message or exc.code

    def _error_response(self, exc: DomainError, request_id: RequestId) -> JSONRPCErrorResponse:
        data: dict[str, Any] = {"kind": exc.kind, "code": exc.code}
        if not isinstance(exc, InternalError):
            data["detail"] = exc.message
            data.update(exc.details)
        cid = get_correlation_id()
        if cid:
            data["correlation_id"] = cid
        return JSONRPCErrorResponse(
            error=JSONRPCError(
                code=exc.jsonrpc_code,
                message=_MESSAGES.get(type(exc), "Server error"),
                data=data,
            ),
            id=request_id,
        )

    @staticmethod
    def _log_failure(method: str, exc: DomainError) -> None:
        logger.warning(
            "mcp.request_failed",
            extra={"method": method, "kind": exc.kind, "error_code": exc.code, "error": exc.message},
        )

    def _observe(self, transport: str, method: str, outcome: str, started: float) -> None:
        self._count(transport, method, outcome)
        get_mcp_request_duration_seconds().labels(transport, method).observe(
            time.perf_counter() - started
        )

    @staticmethod
    def _count(transport: str, method: str, outcome: str) -> None:
        get_mcp_requests_total().labels(transport, method, outcome).inc()
