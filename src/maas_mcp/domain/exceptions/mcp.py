# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""
MCP Protocol & Tool Exceptions

Purpose:
    Error taxonomy shared by the registry, the dispatcher, the retry helper
    and the MAAS client. Protocol-layer errors (parse, invalid request, unknown
    method) become JSON-RPC error objects; application-layer errors (validation,
    upstream, not found, canceled) become tool-level errors.

Layer: domain/exceptions
"""
from __future__ import annotations

from typing import Any

from .base import DomainError

# JSON-RPC 2.0 reserved codes plus the implementation-defined server error.
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


class ParseError(DomainError):
    """Inbound payload is not valid JSON."""

    code = "PARSE_ERROR"
    kind = "ParseError"
    jsonrpc_code = PARSE_ERROR


class InvalidRequestError(DomainError):
    """Payload is JSON but not an acceptable request envelope."""

    code = "INVALID_REQUEST"
    kind = "InvalidRequest"
    jsonrpc_code = INVALID_REQUEST


class MethodNotFoundError(DomainError):
    """No tool or built-in method is registered under the requested name."""

    code = "METHOD_NOT_FOUND"
    kind = "MethodNotFound"
    jsonrpc_code = METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        super().__init__(f"Method not found: {method}", details={"method": method})
        self.method = method


class ValidationError(DomainError):
    """Tool parameters are missing or malformed."""

    code = "VALIDATION_ERROR"
    kind = "ValidationError"
    jsonrpc_code = SERVER_ERROR


class NotFoundError(DomainError):
    """An identifier carried by the request does not resolve to a backend entity."""

    code = "NOT_FOUND"
    kind = "NotFound"
    jsonrpc_code = SERVER_ERROR


class ResourceNotFoundError(NotFoundError):
    """No registered resource URI template matches the requested URI."""

    code = "RESOURCE_NOT_FOUND"

    def __init__(self, uri: str) -> None:
        DomainError.__init__(
            self, f"No resource matches URI: {uri}", details={"uri": uri}
        )
        self.uri = uri


class UpstreamError(DomainError):
    """The MAAS API call failed (network, HTTP error status or bad payload)."""

    code = "UPSTREAM_ERROR"
    kind = "UpstreamError"
    jsonrpc_code = SERVER_ERROR

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
        self.retryable = retryable


class RetryExhaustedError(UpstreamError):
    """Every retry attempt failed; ``__cause__`` holds the last error."""

    code = "RETRY_EXHAUSTED"

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"failed after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
            retryable=False,
            details={"attempts": attempts},
        )
        self.attempts = attempts


class OperationCanceledError(DomainError):
    """The caller canceled the operation before it completed."""

    code = "CANCELED"
    kind = "Canceled"
    jsonrpc_code = SERVER_ERROR


class InternalError(DomainError):
    """Unexpected condition; the message shown to callers stays generic."""

    code = "INTERNAL_ERROR"
    kind = "Internal"
    jsonrpc_code = INTERNAL_ERROR


class DuplicateNameError(DomainError):
    """A tool or resource with the same name is already registered."""

    code = "DUPLICATE_NAME"
    kind = "Duplicate"

    def __init__(self, name: str) -> None:
        super().__init__(f"Already registered: {name}", details={"name": name})
        self.name = name
