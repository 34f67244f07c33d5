"""Wire client for a running dependency handler.

DepClient implements DepManagerProtocol by sending commands to the handler
endpoint, so code written against the protocol works the same whether the
manager is in-process or lives in another process:

    client = DepClient(config.handler)
    dep = Dep.new("github.com/ahmetson/proxy-lib")
    if not await client.installed(dep):
        await client.install(dep)
    await client.run(dep, "proxy-1")

Descriptors are sent as-is; the handler lints them against its own roots.
"""

from __future__ import annotations

__all__ = ["DepClient"]

import logging
from typing import Any

from sds_deps.constants import DEFAULT_REQUEST_TIMEOUT_SECONDS
from sds_deps.dep import Dep, LintedDep
from sds_deps.exceptions import DepNotLintedError, RemoteCallError, TransportError
from sds_deps.models import ClientConfig
from sds_deps.protocol import (
    CLOSE,
    CLOSE_DEP,
    DEP_INSTALLED,
    DEP_RUNNING,
    HEARTBEAT,
    INSTALL_DEP,
    RUN_DEP,
    UNINSTALL_DEP,
    Request,
)
from sds_deps.transport import request


def _descriptor(dep: Dep | LintedDep | None, operation: str) -> Dep:
    if isinstance(dep, LintedDep):
        return dep.dep
    if isinstance(dep, Dep):
        return dep
    raise DepNotLintedError(operation)


class DepClient:
    """Talks to a DepHandler over its endpoint."""

    def __init__(
        self,
        handler: ClientConfig,
        timeout: float | None = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        install_timeout: float | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            handler: Endpoint of the handler.
            timeout: Deadline in seconds for each request.
            install_timeout: Deadline for install-dep, None to wait for the
                build however long it takes.
        """
        self._handler = handler
        self._timeout = timeout
        self._install_timeout = install_timeout

    @property
    def handler(self) -> ClientConfig:
        """Endpoint of the handler."""
        return self._handler

    async def _call(
        self,
        command: str,
        parameters: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        reply = await request(
            self._handler,
            Request(command=command, parameters=parameters or {}),
            timeout,
        )
        if not reply.ok:
            raise RemoteCallError(command, reply.message)
        return reply.parameters

    async def ping(self) -> bool:
        """True if the handler answers a heartbeat."""
        try:
            await self._call(HEARTBEAT, timeout=self._timeout)
        except (TransportError, RemoteCallError):
            return False
        return True

    async def installed(self, dep: Dep | LintedDep | None) -> bool:
        """Ask the handler whether the dependency's binary exists."""
        if dep is None:
            return False
        descriptor = _descriptor(dep, "installed")
        parameters: dict[str, Any] = {"url": descriptor.url}
        if descriptor.local_bin:
            parameters["local_bin"] = descriptor.local_bin
        result = await self._call(DEP_INSTALLED, parameters, self._timeout)
        return bool(result.get("installed", False))

    async def install(self, dep: Dep | LintedDep | None, logger: logging.Logger | None = None) -> None:
        """Ask the handler to fetch and build the dependency.

        Build output is logged by the handler, not sent back; logger is
        accepted for protocol compatibility.
        """
        descriptor = _descriptor(dep, "install")
        parameters: dict[str, Any] = {"url": descriptor.url}
        if descriptor.branch:
            parameters["branch"] = descriptor.branch
        if descriptor.local_src:
            parameters["local_src"] = descriptor.local_src
        await self._call(INSTALL_DEP, parameters, self._install_timeout)

    async def uninstall(self, dep: Dep | LintedDep | None) -> None:
        """Ask the handler to delete the dependency's manager-owned artifacts."""
        descriptor = _descriptor(dep, "uninstall")
        parameters: dict[str, Any] = {"url": descriptor.url}
        if descriptor.local_src:
            parameters["local_src"] = descriptor.local_src
        if descriptor.local_bin:
            parameters["local_bin"] = descriptor.local_bin
        await self._call(UNINSTALL_DEP, parameters, self._timeout)

    async def run(
        self,
        dep: Dep | LintedDep | None,
        instance_id: str,
        logger: logging.Logger | None = None,
        parent: ClientConfig | None = None,
    ) -> None:
        """Ask the handler to spawn the dependency as instance_id."""
        descriptor = _descriptor(dep, "run")
        parameters: dict[str, Any] = {"url": descriptor.url, "id": instance_id}
        if descriptor.local_bin:
            parameters["local_bin"] = descriptor.local_bin
        if parent is not None:
            parameters["parent"] = parent.model_dump(mode="json")
        await self._call(RUN_DEP, parameters, self._timeout)

    async def running(self, client: ClientConfig) -> bool:
        """Ask the handler to probe a dependency endpoint."""
        result = await self._call(DEP_RUNNING, {"dep": client.model_dump(mode="json")}, self._timeout)
        return bool(result.get("running", False))

    async def close(self, client: ClientConfig) -> None:
        """Ask the handler to close a dependency."""
        await self._call(CLOSE_DEP, {"dep": client.model_dump(mode="json")}, self._timeout)

    async def close_handler(self) -> None:
        """Ask the handler itself to stop serving."""
        await self._call(CLOSE, timeout=self._timeout)
