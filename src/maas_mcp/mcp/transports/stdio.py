# src/maas_mcp/mcp/transports/stdio.py
# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Stdio MCP Transport.

Purpose:
    Serve the dispatcher over newline-delimited JSON on stdin/stdout.

Design:
    * A daemon reader thread pushes stdin lines into an ``asyncio.Queue``; a
      single processing loop handles them in arrival order. A slow tool call
      therefore delays every later message on the same stream.
    * Each response is written as one line and flushed, then the loop pauses
      for the configured settle delay.
    * On EOF the server keeps running until SIGINT/SIGTERM unless
      ``exit_on_eof`` is set. Signals cancel the shared :class:`CancelToken`,
      which also aborts any in-flight retry.
    * Readiness sentinels are written by :mod:`maas_mcp.mcp.handshake` before
      the first read; the dispatcher is unaware of them.
    * stdout carries protocol traffic only; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
import sys
import threading
import uuid
from typing import IO, Any

from maas_mcp.config.settings import HandshakeMode
from maas_mcp.infrastructure.logging.logger import get_json_logger, set_request_context
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.dispatcher import Dispatcher
from maas_mcp.mcp.handshake import emit_ready_sentinels

logger = get_json_logger(__name__)

_EOF = None


class StdioServer:
    """Line-oriented MCP server bound to a pair of text streams."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        server_name: str,
        server_version: str,
        handshake_mode: HandshakeMode = HandshakeMode.FULL,
        settle_s: float = 0.01,
        exit_on_eof: bool = False,
        stdin: IO[str] | IO[bytes] | None = None,
        stdout: IO[str] | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        """Initialize the stdio server.

        Args:
            dispatcher: Dispatcher that handles each decoded line.
            server_name: Name announced by the readiness sentinels.
            server_version: Version announced by the readiness sentinels.
            handshake_mode: Which readiness sentinels to write at startup.
            settle_s: Pause after each write, in seconds; ``0`` disables it.
            exit_on_eof: Return as soon as stdin closes instead of idling.
            stdin: Input stream. Defaults to ``sys.stdin``. A text stream that
                exposes ``buffer`` is read as bytes so each line is decoded on
                its own.
            stdout: Output stream. Defaults to ``sys.stdout``.
            install_signal_handlers: Bind SIGINT/SIGTERM to cancellation.
        """
        self._dispatcher = dispatcher
        self._server_name = server_name
        self._server_version = server_version
        self._handshake_mode = handshake_mode
        self._settle_s = max(0.0, settle_s)
        self._exit_on_eof = exit_on_eof
        source = stdin if stdin is not None else sys.stdin
        self._stdin: IO[Any] = getattr(source, "buffer", source)
        self._stdout = stdout if stdout is not None else sys.stdout
        self._install_signal_handlers = install_signal_handlers
        self._write_lock = threading.Lock()
        self._cancel: CancelToken | None = None

    async def run(self, cancel: CancelToken | None = None) -> int:
        """Serve until cancelled (or until EOF with ``exit_on_eof``).

        Args:
            cancel: Token that stops the loop; one is created if omitted.

        Returns:
            Process exit code (0 on graceful shutdown).
        """
        cancel = cancel or CancelToken()
        self._cancel = cancel
        loop = asyncio.get_running_loop()
        installed = self._bind_signals(loop, cancel)

        logger.info(
            "stdio.starting",
            extra={"handshake_mode": self._handshake_mode.value, "settle_s": self._settle_s},
        )
        emit_ready_sentinels(
            self._write_line,
            self._handshake_mode,
            name=self._server_name,
            version=self._server_version,
        )

        queue: asyncio.Queue[str | None] = asyncio.Queue()
        reader = threading.Thread(
            target=self._read_lines, args=(loop, queue), name="mcp-stdio-reader", daemon=True
        )
        reader.start()

        try:
            while not cancel.cancelled:
                line = await self._next_line(queue, cancel)
                if cancel.cancelled:
                    break
                if line is _EOF:
                    if self._exit_on_eof:
                        logger.info("stdio.eof_exit")
                        break
                    logger.info("stdio.eof_idle")
                    await cancel.wait()
                    break
                await self._process(line, cancel)
        finally:
            for sig in installed:
                with contextlib.suppress(Exception):
                    loop.remove_signal_handler(sig)

        logger.info("stdio.stopped")
        return 0

    # ------------------------------------------------------------------ internals

    def _bind_signals(self, loop: asyncio.AbstractEventLoop, cancel: CancelToken) -> list[int]:
        if not self._install_signal_handlers:
            return []
        installed: list[int] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig, cancel)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("stdio.signal_handler_unavailable", extra={"signal": int(sig)})
                continue
            installed.append(sig)
        return installed

    @staticmethod
    def _on_signal(sig: int, cancel: CancelToken) -> None:
        logger.info("stdio.signal_received", extra={"signal": signal.Signals(sig).name})
        cancel.cancel()

    def _read_lines(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]) -> None:
        """Reader thread body: forward stdin lines, then an EOF marker.

        Undecodable bytes are replaced per line, so one bad line reaches the
        dispatcher as a parse error and later lines are unaffected.
        """
        try:
            for raw in self._stdin:
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8", errors="replace")
                loop.call_soon_threadsafe(queue.put_nowait, raw)
        except (OSError, ValueError):
            logger.exception("stdio.read_failed")
        with contextlib.suppress(RuntimeError):
            # Loop may already be closed after shutdown.
            loop.call_soon_threadsafe(queue.put_nowait, _EOF)

    @staticmethod
    async def _next_line(queue: asyncio.Queue[str | None], cancel: CancelToken) -> str | None:
        getter = asyncio.ensure_future(queue.get())
        stopper = asyncio.ensure_future(cancel.wait())
        done, pending = await asyncio.wait(
            {getter, stopper}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if getter in done:
            return getter.result()
        return _EOF

    async def _process(self, raw: str, cancel: CancelToken) -> None:
        line = raw.strip()
        if not line:
            return

        set_request_context(correlation_id=str(uuid.uuid4()))
        logger.debug("stdio.received", extra={"length": len(line)})

        response = await self._dispatcher.handle_line(line, cancel=cancel, transport="stdio")
        if response is None:
            return

        self._write_line(self._encode(response.to_wire()))
        if self._settle_s:
            await asyncio.sleep(self._settle_s)

    @staticmethod
    def _encode(payload: dict[str, Any]) -> str:
        try:
            return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            logger.exception("stdio.encode_failed")
            fallback = {
                "jsonrpc": "2.0",
                "error": {"code": -32603, "message": "Internal error"},
                "id": payload.get("id"),
            }
            return json.dumps(fallback, separators=(",", ":"))

    def _write_line(self, line: str) -> None:
        with self._write_lock:
            try:
                self._stdout.write(line + "\n")
                self._stdout.flush()
            except OSError:
                # Peer closed stdout; nothing more can be delivered.
                logger.warning("stdio.write_failed", exc_info=True)
                if self._cancel is not None:
                    self._cancel.cancel()
