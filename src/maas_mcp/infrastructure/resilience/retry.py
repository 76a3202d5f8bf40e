# src/maas_mcp/infrastructure/resilience/retry.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Retry utilities (async) with a fixed attempt budget and fixed delay.

The loop polls a :class:`CancelToken` before every attempt and before every
sleep, and the sleep itself wakes early on cancellation.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from maas_mcp.domain.exceptions.mcp import (
    NotFoundError,
    OperationCanceledError,
    RetryExhaustedError,
    UpstreamError,
    ValidationError,
)
from maas_mcp.infrastructure.logging.logger import get_json_logger
from maas_mcp.infrastructure.resilience.cancellation import CancelToken

T = TypeVar("T")

logger = get_json_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry attempts."""

    attempts: int = 3  # total invocations, first call included
    delay_s: float = 2.0  # fixed pause between attempts

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.delay_s < 0:
            raise ValueError("delay_s must be >= 0")


def default_retry_on(exc: Exception) -> bool:
    """Return True for errors worth another attempt.

    Parameter problems and missing entities will not change on retry; upstream
    errors are retried unless they were classified as terminal.
    """
    if isinstance(exc, ValidationError | NotFoundError | OperationCanceledError):
        return False
    if isinstance(exc, UpstreamError):
        return exc.retryable
    return True


async def retry(
    op: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    cancel: CancelToken | None = None,
    retry_on: Callable[[Exception], bool] = default_retry_on,
    on_retry: Callable[[int, Exception], None] | None = None,
    name: str = "operation",
) -> T:
    """Run ``op`` until it succeeds or the attempt budget is spent.

    Args:
        op: Zero-arg async function to execute.
        policy: Attempt count and delay.
        cancel: Optional token polled before each attempt and each sleep.
        retry_on: Predicate deciding whether an error is retryable. A False
            result re-raises the error immediately.
        on_retry: Optional hook called with ``(attempt, error)`` before sleeping.
        name: Operation name used in log records.

    Returns:
        The return value of ``op`` if successful.

    Raises:
        OperationCanceledError: If ``cancel`` fires before completion.
        RetryExhaustedError: After ``policy.attempts`` failures; ``__cause__``
            is the last error.
        Exception: Any non-retryable error raised by ``op``.
    """
    started = time.perf_counter()
    for attempt in range(1, policy.attempts + 1):
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            return await op()
        except OperationCanceledError:
            raise
        except Exception as exc:
            if not retry_on(exc):
                raise
            logger.warning(
                "retry_attempt_failed",
                extra={
                    "operation": name,
                    "attempt": attempt,
                    "attempts": policy.attempts,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            if attempt == policy.attempts:
                logger.error(
                    "retry_exhausted",
                    extra={
                        "operation": name,
                        "attempts": policy.attempts,
                        "elapsed_ms": round((time.perf_counter() - started) * 1000.0, 2),
                    },
                )
                raise RetryExhaustedError(policy.attempts, exc) from exc
            if on_retry is not None:
                on_retry(attempt, exc)

        # Sleep between attempts; a cancel wakes the sleeper immediately.
        if cancel is not None:
            cancel.raise_if_cancelled()
            if await cancel.wait(policy.delay_s):
                raise OperationCanceledError(f"{name} canceled during retry backoff")
        else:
            await asyncio.sleep(policy.delay_s)

    raise AssertionError("unreachable")  # pragma: no cover
