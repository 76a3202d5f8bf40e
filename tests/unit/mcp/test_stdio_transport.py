# Copyright (c) maas-mcp.
# SPDX-License-Identifier: MIT
"""Unit tests for the stdio transport loop."""

from __future__ import annotations

import asyncio
import io
import json
from typing import IO, Any

import pytest

from maas_mcp.config.settings import HandshakeMode
from maas_mcp.infrastructure.resilience.cancellation import CancelToken
from maas_mcp.mcp.dispatcher import Dispatcher
from maas_mcp.mcp.handshake import PLAIN_READY_LINE
from maas_mcp.mcp.transports.stdio import StdioServer


def _server(
    dispatcher: Dispatcher,
    stdin: str | IO[str],
    stdout: Any,
    *,
    handshake: HandshakeMode = HandshakeMode.NONE,
    exit_on_eof: bool = True,
) -> StdioServer:
    return StdioServer(
        dispatcher,
        server_name="maas-mcp-test",
        server_version="9.9.9",
        handshake_mode=handshake,
        settle_s=0,
        exit_on_eof=exit_on_eof,
        stdin=io.StringIO(stdin) if isinstance(stdin, str) else stdin,
        stdout=stdout,
        install_signal_handlers=False,
    )


def _lines(out: io.StringIO) -> list[str]:
    return [line for line in out.getvalue().split("\n") if line]


@pytest.mark.anyio
async def test_responses_are_written_one_per_line_in_order(dispatcher: Dispatcher) -> None:
    requests = [
        {"jsonrpc": "2.0", "method": "ping", "id": 1},
        {"jsonrpc": "2.0", "method": "maas_list_tags", "id": 2},
        {"jsonrpc": "2.0", "method": "missing", "id": 3},
    ]
    stdin = "".join(json.dumps(r) + "\n" for r in requests)
    out = io.StringIO()

    code = await _server(dispatcher, stdin, out).run()

    assert code == 0
    responses = [json.loads(line) for line in _lines(out)]
    assert [r["id"] for r in responses] == [1, 2, 3]
    assert responses[0]["result"] == {}
    assert responses[1]["result"][0]["name"] == "gpu"
    assert responses[2]["error"]["code"] == -32601


@pytest.mark.anyio
async def test_full_handshake_precedes_responses(dispatcher: Dispatcher) -> None:
    out = io.StringIO()

    await _server(
        dispatcher,
        '{"jsonrpc":"2.0","method":"ping","id":"p"}\n',
        out,
        handshake=HandshakeMode.FULL,
    ).run()

    lines = _lines(out)
    assert lines[0] == PLAIN_READY_LINE
    assert len(lines) == 5
    assert json.loads(lines[-1]) == {"jsonrpc": "2.0", "result": {}, "id": "p"}


@pytest.mark.anyio
async def test_blank_lines_and_notifications_produce_no_output(dispatcher: Dispatcher) -> None:
    out = io.StringIO()
    stdin = '\n   \n{"jsonrpc":"2.0","method":"notifications/initialized"}\n'

    await _server(dispatcher, stdin, out).run()

    assert _lines(out) == []


@pytest.mark.anyio
async def test_malformed_line_yields_parse_error_and_loop_continues(dispatcher: Dispatcher) -> None:
    out = io.StringIO()
    stdin = '{"id": 5, "method": oops}\n{"jsonrpc":"2.0","method":"ping","id":6}\n'

    await _server(dispatcher, stdin, out).run()

    first, second = (json.loads(line) for line in _lines(out))
    assert first["error"]["code"] == -32700
    assert first["id"] == 5
    assert second["id"] == 6


@pytest.mark.anyio
async def test_tool_call_envelope_over_stdio(dispatcher: Dispatcher) -> None:
    out = io.StringIO()
    stdin = json.dumps({"type": "tool_call", "tool": "create_tag", "params": {}}) + "\n"

    await _server(dispatcher, stdin, out).run()

    (body,) = (json.loads(line) for line in _lines(out))
    assert body["isError"] is True
    assert "name" in body["content"][0]["text"]


@pytest.mark.anyio
async def test_eof_idles_until_cancelled(dispatcher: Dispatcher) -> None:
    out = io.StringIO()
    cancel = CancelToken()
    server = _server(
        dispatcher, '{"jsonrpc":"2.0","method":"ping","id":1}\n', out, exit_on_eof=False
    )

    task = asyncio.ensure_future(server.run(cancel))
    await asyncio.sleep(0.1)
    assert not task.done()
    assert len(_lines(out)) == 1

    cancel.cancel()
    code = await asyncio.wait_for(task, timeout=2.0)
    assert code == 0


@pytest.mark.anyio
async def test_handler_results_are_serialized_as_compact_json(dispatcher: Dispatcher) -> None:
    out = io.StringIO()

    await _server(dispatcher, '{"jsonrpc":"2.0","method":"ping","id":1}\n', out).run()

    raw: Any = out.getvalue()
    assert raw == '{"jsonrpc":"2.0","result":{},"id":1}\n'


@pytest.mark.anyio
async def test_undecodable_line_is_parse_error_and_next_line_is_served(
    dispatcher: Dispatcher,
) -> None:
    raw = b"\xff\xfe garbage\n" + b'{"jsonrpc":"2.0","method":"ping","id":7}\n'
    stdin = io.TextIOWrapper(io.BytesIO(raw), encoding="utf-8")
    out = io.StringIO()

    code = await _server(dispatcher, stdin, out).run()

    assert code == 0
    first, second = (json.loads(line) for line in _lines(out))
    assert first["error"]["code"] == -32700
    assert first["id"] is None
    assert second == {"jsonrpc": "2.0", "result": {}, "id": 7}


class _ClosedPipe(io.StringIO):
    def write(self, s: str) -> int:
        raise BrokenPipeError(32, "Broken pipe")


@pytest.mark.anyio
async def test_broken_stdout_stops_the_loop_cleanly(dispatcher: Dispatcher) -> None:
    cancel = CancelToken()
    stdin = '{"jsonrpc":"2.0","method":"ping","id":1}\n{"jsonrpc":"2.0","method":"ping","id":2}\n'
    server = _server(dispatcher, stdin, _ClosedPipe(), exit_on_eof=False)

    code = await asyncio.wait_for(server.run(cancel), timeout=2.0)

    assert code == 0
    assert cancel.cancelled
