"""Tests for the stream transport.

Servers run in-process on a Unix socket under a short runtime dir, or on
a TCP port.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from sds_deps.exceptions import TransportError
from sds_deps.models import ClientConfig
from sds_deps.protocol import Reply, Request
from sds_deps.transport import STREAM_LIMIT_BYTES, exchange, request, start_endpoint_server


async def echo_dispatch(req: Request) -> Reply:
    """Reply with the command name."""
    return req.ok({"command": req.command, **req.parameters})


class TestEndpointServer:
    """Tests for start_endpoint_server() and serve_connection()."""

    @pytest.mark.asyncio
    async def test_unix_socket_round_trip(self, runtime_dir: Path) -> None:
        endpoint = ClientConfig(id="echo")
        server = await start_endpoint_server(endpoint, echo_dispatch)
        try:
            reply = await request(endpoint, Request(command="ping", parameters={"n": 1}), timeout=2.0)
        finally:
            server.close()
            await server.wait_closed()

        assert reply.ok is True
        assert reply.parameters == {"command": "ping", "n": 1}
        assert endpoint.socket_path.parent == runtime_dir
        assert oct(endpoint.socket_path.stat().st_mode & 0o777) == oct(0o600)

    @pytest.mark.asyncio
    async def test_tcp_round_trip(self, free_port: int) -> None:
        endpoint = ClientConfig(id="echo", port=free_port)
        server = await start_endpoint_server(endpoint, echo_dispatch)
        try:
            reply = await request(endpoint, Request(command="ping"), timeout=2.0)
        finally:
            server.close()
            await server.wait_closed()

        assert reply.parameters["command"] == "ping"

    @pytest.mark.asyncio
    async def test_stale_socket_is_replaced(self, runtime_dir: Path) -> None:
        endpoint = ClientConfig(id="stale")
        endpoint.socket_path.write_text("")

        server = await start_endpoint_server(endpoint, echo_dispatch)
        try:
            reply = await request(endpoint, Request(command="ping"), timeout=2.0)
        finally:
            server.close()
            await server.wait_closed()

        assert reply.ok is True

    @pytest.mark.asyncio
    async def test_invalid_line_gets_failure_and_connection_survives(self, free_port: int) -> None:
        endpoint = ClientConfig(id="echo", port=free_port)
        server = await start_endpoint_server(endpoint, echo_dispatch)
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", free_port)
            writer.write(b"this is not json\n")
            writer.write(Request(command="after").encode())
            await writer.drain()
            first = Reply.decode(await reader.readline())
            second = Reply.decode(await reader.readline())
            writer.close()
            await writer.wait_closed()
        finally:
            server.close()
            await server.wait_closed()

        assert first is not None and first.ok is False
        assert "invalid request" in first.message
        assert second is not None and second.parameters["command"] == "after"


class TestRequest:
    """Tests for request() error mapping."""

    @pytest.mark.asyncio
    async def test_refused_raises_transport_error(self, free_port: int) -> None:
        endpoint = ClientConfig(id="nobody", port=free_port)

        with pytest.raises(TransportError, match="failed"):
            await request(endpoint, Request(command="ping"), timeout=1.0)

    @pytest.mark.asyncio
    async def test_missing_socket_raises_oserror_from_exchange(self, runtime_dir: Path) -> None:
        with pytest.raises(OSError):
            await exchange(ClientConfig(id="missing"), Request(command="ping"))

    @pytest.mark.asyncio
    async def test_silent_endpoint_times_out(self, free_port: int) -> None:
        async def never_reply(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await reader.read()
            writer.close()

        server = await asyncio.start_server(never_reply, "127.0.0.1", free_port)
        try:
            with pytest.raises(TransportError, match="timed out"):
                await request(ClientConfig(id="silent", port=free_port), Request(command="ping"), timeout=0.3)
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_close_without_reply(self, free_port: int) -> None:
        async def hang_up(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await reader.readline()
            writer.close()

        server = await asyncio.start_server(hang_up, "127.0.0.1", free_port)
        try:
            with pytest.raises(TransportError, match="without replying"):
                await request(ClientConfig(id="rude", port=free_port), Request(command="ping"), timeout=2.0)
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_oversized_reply_raises_transport_error(self, free_port: int) -> None:
        async def flood(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await reader.readline()
            writer.write(b"x" * (STREAM_LIMIT_BYTES + 1024) + b"\n")
            try:
                await writer.drain()
            except ConnectionError:
                pass
            writer.close()

        server = await asyncio.start_server(flood, "127.0.0.1", free_port)
        try:
            with pytest.raises(TransportError, match="over"):
                await request(ClientConfig(id="loud", port=free_port), Request(command="ping"), timeout=5.0)
        finally:
            server.close()
            await server.wait_closed()
