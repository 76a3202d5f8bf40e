# src/maas_mcp/infrastructure/logging/logger.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""One-line JSON log records for the bridge.

Records are written to stderr by default; stdout belongs to the stdio
transport and must only ever carry protocol frames.

Record shape:
    * Always present: ``ts``, ``level``, ``logger``, ``message``.
    * Automatic enrichment with ``correlation_id`` and ``trace_id`` via contextvars.
    * ``trace_id`` falls back to the active OpenTelemetry span, if any.
    * Fields passed through ``extra=`` are merged into the JSON object.
    * The stream is selectable so the stdio transport can keep stdout clean.

Usage:
    configure_root_logging("DEBUG")
    _logger = get_json_logger(__name__)
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import IO, Any

from opentelemetry import trace as otel_trace

__all__ = [
    "configure_root_logging",
    "get_json_logger",
    "set_request_context",
    "get_correlation_id",
    "get_trace_id",
]

# Per-request correlation context (task-local via contextvars).
_CORRELATION_ID_CTX: ContextVar[str | None] = ContextVar("maas_mcp_correlation_id", default=None)
_TRACE_ID_CTX: ContextVar[str | None] = ContextVar("maas_mcp_trace_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


def set_request_context(
    *, correlation_id: str | None = None, trace_id: str | None = None
) -> None:
    """Set per-request correlation identifiers on the current context.

    Args:
        correlation_id: Correlation identifier from ``X-Correlation-ID``, if any.
        trace_id: Distributed tracing identifier (hex string), if any.

    Notes:
        This function is additive: passing only one of the arguments updates
        that value and leaves the other unchanged.
    """
    if correlation_id is not None:
        _CORRELATION_ID_CTX.set(correlation_id)
    if trace_id is not None:
        _TRACE_ID_CTX.set(trace_id)


def get_correlation_id() -> str | None:
    """Return the current correlation id from contextvars, if any."""
    return _CORRELATION_ID_CTX.get(None)


def get_trace_id() -> str | None:
    """Return the current trace id from contextvars, if any."""
    return _TRACE_ID_CTX.get(None)


def _derive_otel_trace_id() -> str | None:
    """Derive a hex trace id from the current OpenTelemetry span, if any.

    Returns:
        Hex-encoded trace id suitable for log correlation, or ``None`` if no
        span is recording.
    """
    ctx = otel_trace.get_current_span().get_span_context()
    trace_id = getattr(ctx, "trace_id", 0)
    # OTEL uses 0 as the "invalid" trace id sentinel.
    if not trace_id:
        return None
    return f"{int(trace_id):032x}"


class _JsonFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single compact JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = dict(
            ts=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )

        cid = getattr(record, "correlation_id", None) or _CORRELATION_ID_CTX.get(None)
        if cid:
            payload["correlation_id"] = cid

        tid = getattr(record, "trace_id", None) or _TRACE_ID_CTX.get(None)
        if not tid:
            tid = _derive_otel_trace_id()
        if tid:
            payload["trace_id"] = tid

        if record.exc_info and record.exc_info[1] is not None:
            err = record.exc_info[1]
            payload["error"] = {"type": type(err).__name__, "message": str(err)}
            payload["stack"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in payload:
                payload[key] = value

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_root_logging(
    level: str | int | None = None, *, stream: IO[str] | None = None
) -> None:
    """Attach the JSON handler to the root logger once and set its level.

    Args:
        level: Level or level name. Falls back to ``$LOG_LEVEL``, then ``INFO``.
        stream: Target stream. Defaults to ``sys.stderr`` so that stdout stays
            free for protocol traffic.
    """
    root = logging.getLogger()

    resolved = level if level is not None else os.getenv("LOG_LEVEL") or "INFO"
    root.setLevel(resolved.upper() if isinstance(resolved, str) else resolved)

    if any(isinstance(h.formatter, _JsonFormatter) for h in root.handlers):
        # Already configured; prevent duplicate handlers on hot reload.
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root.addHandler(handler)


def get_json_logger(name: str) -> logging.Logger:
    """Return the named logger; output format comes from the root handler."""
    log = logging.getLogger(name)
    log.propagate = True
    return log
