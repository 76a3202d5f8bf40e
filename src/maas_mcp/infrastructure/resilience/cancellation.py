# src/maas_mcp/infrastructure/resilience/cancellation.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Cooperative cancellation token for long-running async operations."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable

from maas_mcp.domain.exceptions.mcp import OperationCanceledError


class CancelToken:
    """One-shot cancellation signal shared by a caller and its operations.

    The underlying event binds to a loop only on first wait, so a token may be
    constructed before the loop starts.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """True once :meth:`cancel` has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation to every waiter (idempotent)."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise ``OperationCanceledError`` if the token has been cancelled."""
        if self._event.is_set():
            raise OperationCanceledError("operation canceled")

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until cancelled or until ``timeout`` seconds elapse.

        Returns:
            True if the token was cancelled, False on timeout.
        """
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        return self._event.is_set()


@contextlib.asynccontextmanager
async def cancel_on_disconnect(
    is_disconnected: Callable[[], Awaitable[bool]], *, poll_s: float = 0.1
) -> AsyncIterator[CancelToken]:
    """Yield a token that is cancelled once ``is_disconnected()`` reports True.

    A background task polls every ``poll_s`` seconds while the block runs and
    is stopped on exit. HTTP handlers pass ``request.is_disconnected`` so a
    client that hangs up aborts in-flight retries.
    """
    token = CancelToken()

    async def _watch() -> None:
        while not token.cancelled:
            if await is_disconnected():
                token.cancel()
                return
            await asyncio.sleep(poll_s)

    watcher = asyncio.ensure_future(_watch())
    try:
        yield token
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
