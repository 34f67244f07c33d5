"""Liveness prober and remote closer.

Both talk to a dependency's own control endpoint and both are bounded
in time.

Probe guarantee: running() returns True only if the endpoint answered a
heartbeat request before the deadline. Connection attempts are retried
until the deadline, so a dependency that is still starting up gets the
whole window. A process that listens but never answers is reported as
not running, and a positive answer is a snapshot: the dependency may
exit right after replying.
"""

from __future__ import annotations

__all__ = [
    "close_remote",
    "probe",
]

import asyncio
import logging

from sds_deps.constants import APP_NAME, PROBE_RETRY_INTERVAL_SECONDS
from sds_deps.exceptions import RemoteCloseError, TransportError
from sds_deps.models import ClientConfig
from sds_deps.protocol import CLOSE, HEARTBEAT, Request
from sds_deps.transport import exchange, request

_logger = logging.getLogger(f"{APP_NAME}.manager.liveness")


async def _heartbeat_until_reply(client: ClientConfig) -> None:
    heartbeat = Request(command=HEARTBEAT)
    while True:
        try:
            # Any reply, including a failure reply, proves the endpoint is serving
            await exchange(client, heartbeat)
            return
        except (OSError, TransportError):
            await asyncio.sleep(PROBE_RETRY_INTERVAL_SECONDS)


async def probe(client: ClientConfig, timeout: float) -> bool:
    """Check whether an endpoint is serving requests.

    Args:
        client: Endpoint of the dependency (not necessarily spawned by us).
        timeout: Deadline in seconds.

    Returns:
        True if a reply arrived within the deadline, False otherwise.
    """
    try:
        await asyncio.wait_for(_heartbeat_until_reply(client), timeout=timeout)
    except asyncio.TimeoutError:
        _logger.debug(
            {
                "event": "probe_timeout",
                "message": f"No reply from {client.url()} within {timeout}s",
                "endpoint": client.url(),
            }
        )
        return False
    return True


async def close_remote(client: ClientConfig, timeout: float) -> None:
    """Ask a dependency to shut down through its control endpoint.

    Args:
        client: Endpoint of the dependency.
        timeout: Deadline in seconds for the whole request.

    Raises:
        RemoteCloseError: On connection failure, timeout, or a failure reply.
    """
    try:
        reply = await request(client, Request(command=CLOSE), timeout)
    except TransportError as e:
        raise RemoteCloseError(f"close {client.url()}: {e}") from e

    if not reply.ok:
        raise RemoteCloseError(f"close {client.url()}: dependency replied: {reply.message}")
