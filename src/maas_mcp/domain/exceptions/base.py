# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""
Base Domain Exceptions.

Summary:
    Canonical base class for bridge exceptions. Each subclass carries a stable
    ``code`` string, a taxonomy ``kind`` and the JSON-RPC error code it maps to,
    so that the dispatcher and the HTTP boundary can choose wire shapes without
    inspecting messages.

Layer:
    domain/exceptions
"""
from __future__ import annotations

from typing import Any, ClassVar


class DomainError(Exception):
    """Base class for all domain/application exceptions."""

    code: ClassVar[str] = "DOMAIN_ERROR"
    kind: ClassVar[str] = "Internal"
    jsonrpc_code: ClassVar[int] = -32603

    def __init__(self, message: str = "", *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}
