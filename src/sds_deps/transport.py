"""Stream transport for the request/reply protocol.

Endpoints are described by ClientConfig: TCP when a port is set, a Unix
socket under RUNTIME_DIR otherwise. This module opens connections to
endpoints, performs bounded-time requests, and runs the per-connection
serve loop used by the wire handler and by any endpoint that answers
control commands.
"""

from __future__ import annotations

__all__ = [
    "RequestDispatcher",
    "exchange",
    "open_endpoint",
    "request",
    "serve_connection",
    "start_endpoint_server",
]

import asyncio
import logging
from collections.abc import Awaitable, Callable

from sds_deps.constants import APP_NAME
from sds_deps.exceptions import TransportError
from sds_deps.models import ClientConfig
from sds_deps.protocol import Reply, Request

_logger = logging.getLogger(f"{APP_NAME}.transport")

# Upper bound on a single NDJSON line (requests and replies are small)
STREAM_LIMIT_BYTES = 1024 * 1024

RequestDispatcher = Callable[[Request], Awaitable[Reply]]


async def open_endpoint(
    client: ClientConfig,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Open a stream connection to an endpoint.

    Args:
        client: Endpoint descriptor.

    Returns:
        (reader, writer) pair.

    Raises:
        OSError: If the endpoint refuses or does not exist.
    """
    if client.is_tcp:
        return await asyncio.open_connection(client.host, client.port, limit=STREAM_LIMIT_BYTES)
    return await asyncio.open_unix_connection(str(client.socket_path), limit=STREAM_LIMIT_BYTES)


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
        await writer.wait_closed()
    except OSError:
        pass  # Already closed


async def exchange(client: ClientConfig, req: Request) -> Reply:
    """Send one request on a fresh connection and read its reply, unbounded.

    Raises:
        OSError: If the endpoint cannot be reached.
        TransportError: If the endpoint closes without a valid reply, or the
            reply line exceeds STREAM_LIMIT_BYTES.
    """
    reader, writer = await open_endpoint(client)
    try:
        writer.write(req.encode())
        await writer.drain()
        line = await reader.readline()
    except ValueError as e:
        raise TransportError(f"{client.url()} sent a reply to '{req.command}' over {STREAM_LIMIT_BYTES} bytes") from e
    finally:
        await _close_writer(writer)

    if not line:
        raise TransportError(f"{client.url()} closed the connection without replying to '{req.command}'")
    reply = Reply.decode(line)
    if reply is None:
        raise TransportError(f"{client.url()} sent an invalid reply to '{req.command}'")
    return reply


async def request(client: ClientConfig, req: Request, timeout: float | None) -> Reply:
    """Send one request and wait for its reply.

    Args:
        client: Endpoint descriptor.
        req: Request to send.
        timeout: Deadline in seconds for connect + send + reply, None for no deadline.

    Returns:
        The endpoint's reply (which may be a failure reply).

    Raises:
        TransportError: On connection failure, timeout, or malformed reply.
    """
    try:
        return await asyncio.wait_for(exchange(client, req), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransportError(f"'{req.command}' to {client.url()} timed out after {timeout}s") from e
    except OSError as e:
        raise TransportError(f"'{req.command}' to {client.url()} failed: {e}") from e


async def serve_connection(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    dispatch: RequestDispatcher,
) -> None:
    """Answer requests on one connection until the peer disconnects.

    Lines that are not valid requests get a failure reply; the connection
    stays open.

    Args:
        reader: Stream reader for incoming requests.
        writer: Stream writer for replies.
        dispatch: Coroutine turning a request into a reply.
    """
    try:
        while True:
            line = await reader.readline()
            if not line:
                break

            req = Request.decode(line)
            if req is None:
                reply = Reply(ok=False, message="invalid request: expected {'command': str, 'parameters': {...}}")
            else:
                reply = await dispatch(req)

            writer.write(reply.encode())
            await writer.drain()
    except (ConnectionResetError, BrokenPipeError, asyncio.IncompleteReadError):
        pass  # Peer went away mid-request
    except ValueError:
        # Line exceeded STREAM_LIMIT_BYTES
        _logger.warning({"event": "request_too_large", "message": "Request exceeded stream limit, dropping connection"})
    finally:
        await _close_writer(writer)


async def start_endpoint_server(
    client: ClientConfig,
    dispatch: RequestDispatcher,
) -> asyncio.AbstractServer:
    """Start listening on an endpoint.

    Unix socket endpoints get their runtime directory created and any
    stale socket file removed first.

    Args:
        client: Endpoint descriptor to listen on.
        dispatch: Coroutine turning a request into a reply.

    Returns:
        The started asyncio server.
    """

    async def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await serve_connection(reader, writer, dispatch)

    if client.is_tcp:
        return await asyncio.start_server(on_connect, client.host, client.port, limit=STREAM_LIMIT_BYTES)

    socket_path = client.socket_path
    socket_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    socket_path.unlink(missing_ok=True)
    server = await asyncio.start_unix_server(on_connect, path=str(socket_path), limit=STREAM_LIMIT_BYTES)
    socket_path.chmod(0o600)
    return server
