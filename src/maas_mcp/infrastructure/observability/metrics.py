# src/maas_mcp/infrastructure/observability/metrics.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Prometheus collectors for the MCP bridge.

Accessors hand back collectors registered on whatever ``prom.REGISTRY`` is
active at call time. Tests that swap the default registry get fresh
collectors on the next call, and repeated calls never raise a duplicate
registration error.

Families:

* ``mcp_*``: dispatched requests (transport, method, outcome) and latency.
* ``maas_upstream_*``: calls to the MAAS API by operation and status, plus
  retry attempts.
* ``http_*``: inbound HTTP requests by route template and latency.

Example:
    get_mcp_requests_total().labels("http", "maas_list_machines", "success").inc()
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Final, TypeVar

import prometheus_client as prom
from prometheus_client import Counter, Histogram

_log = logging.getLogger(__name__)

_C = TypeVar("_C", Counter, Histogram)

# Seconds. Upper bucket covers MAAS deploy calls, which are slow.
_LATENCY_BUCKETS: Final[tuple[float, ...]] = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

# Id of the registry the cache below belongs to.
_registry_id: int | None = None
_collectors: dict[str, Counter | Histogram] = {}
_lock = threading.RLock()


def _registered(name: str, kind: type[_C]) -> _C | None:
    """Find ``name`` on the active registry if it is already a ``kind``."""
    mapping = getattr(prom.REGISTRY, "_names_to_collectors", None)
    if not isinstance(mapping, dict):
        return None
    found = mapping.get(name)
    return found if isinstance(found, kind) else None


def _collector(
    kind: type[_C], name: str, help_text: str, labelnames: tuple[str, ...], **kwargs: Any
) -> _C:
    """Return the ``kind`` collector called ``name`` on the active registry.

    The per-process cache is dropped whenever ``prom.REGISTRY`` is replaced.
    A collector that is already registered (hot reload, a second import path)
    is adopted instead of re-created.
    """
    global _registry_id
    with _lock:
        if _registry_id != id(prom.REGISTRY):
            _collectors.clear()
            _registry_id = id(prom.REGISTRY)

        cached = _collectors.get(name)
        if isinstance(cached, kind):
            return cached

        found = _registered(name, kind)
        if found is None:
            try:
                found = kind(name, help_text, labelnames, registry=prom.REGISTRY, **kwargs)
            except ValueError:
                found = _registered(name, kind)
                if found is None:
                    _log.exception("prometheus registration failed for %s", name)
                    raise
        _collectors[name] = found
        return found


def _counter(name: str, help_text: str, labelnames: tuple[str, ...]) -> Counter:
    return _collector(Counter, name, help_text, labelnames)


def _histogram(name: str, help_text: str, labelnames: tuple[str, ...]) -> Histogram:
    return _collector(Histogram, name, help_text, labelnames, buckets=_LATENCY_BUCKETS)


# ---------------------------------------------------------------------------
# MCP dispatch metrics


def get_mcp_requests_total() -> Counter:
    """Return counter for dispatched MCP requests.

    Labels:
        transport: ``http`` or ``stdio``.
        method: Tool or built-in method name (``unknown`` when unresolved).
        outcome: ``success`` or the error kind (e.g. ``ValidationError``).
    """
    return _counter(
        "mcp_requests_total",
        "MCP requests by transport, method and outcome",
        ("transport", "method", "outcome"),
    )


def get_mcp_request_duration_seconds() -> Histogram:
    """Return histogram for MCP dispatch latency.

    Labels:
        transport: ``http`` or ``stdio``.
        method: Tool or built-in method name.
    """
    return _histogram(
        "mcp_request_duration_seconds",
        "Latency (seconds) of MCP request dispatch",
        ("transport", "method"),
    )


# ---------------------------------------------------------------------------
# MAAS upstream metrics


def get_maas_upstream_requests_total() -> Counter:
    """Return counter for MAAS API HTTP calls.

    Labels:
        operation: Client operation name (e.g. ``list_machines``).
        status: HTTP status code as string, or ``transport_error``.
    """
    return _counter(
        "maas_upstream_requests_total",
        "MAAS API calls by operation and status",
        ("operation", "status"),
    )


def get_maas_upstream_retries_total() -> Counter:
    """Return counter for MAAS API retry attempts.

    Labels:
        operation: Client operation name.
    """
    return _counter(
        "maas_upstream_retries_total",
        "MAAS API retry attempts by operation",
        ("operation",),
    )


# ---------------------------------------------------------------------------
# HTTP server metrics


def get_http_requests_total() -> Counter:
    """Return counter for HTTP requests.

    Labels:
        method: Uppercased HTTP method.
        route: Route template (e.g. ``/mcp/{tool_name}``), never the raw path.
        status: Response status code as string.
    """
    return _counter(
        "http_requests_total",
        "HTTP requests by method, route and status",
        ("method", "route", "status"),
    )


def get_http_request_duration_seconds() -> Histogram:
    """Return histogram for HTTP request latency.

    Labels:
        method: Uppercased HTTP method.
        route: Route template.
    """
    return _histogram(
        "http_request_duration_seconds",
        "Latency (seconds) of HTTP requests",
        ("method", "route"),
    )
