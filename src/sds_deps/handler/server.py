"""Wire handler for the dependency manager.

Exposes the manager's lifecycle operations to other processes as NDJSON
request/reply commands on the handler endpoint (DepManagerConfig.handler):

    dep-installed   url, local_bin?                  -> installed
    install-dep     url, branch?, local_src?
    run-dep         url, id, parent?, local_bin?
    dep-running     dep                              -> running
    uninstall-dep   url, local_src?, local_bin?
    close-dep       dep

plus the control commands every endpoint answers: heartbeat and close.

Per-request failures (bad parameters, invalid descriptors, manager
errors) become failure replies; the serve loop keeps running.
"""

from __future__ import annotations

__all__ = [
    "DepHandler",
    "ParameterError",
    "run_handler",
]

import asyncio
import logging
import signal
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from sds_deps.config import DepManagerConfig
from sds_deps.constants import APP_NAME
from sds_deps.dep import Dep
from sds_deps.exceptions import InvalidDependencyError, SdsDepsError
from sds_deps.log_config import log_event
from sds_deps.manager import DepManager
from sds_deps.models import ClientConfig, DepSystemEvent
from sds_deps.protocol import (
    CLOSE,
    CLOSE_DEP,
    DEP_INSTALLED,
    DEP_RUNNING,
    HEARTBEAT,
    INSTALL_DEP,
    RUN_DEP,
    UNINSTALL_DEP,
    Reply,
    Request,
)
from sds_deps.transport import start_endpoint_server

_logger = logging.getLogger(f"{APP_NAME}.handler")

# Seconds to wait for open connections to drain on shutdown
_SERVER_CLOSE_TIMEOUT_SECONDS = 1.0

Route = Callable[[Request], Awaitable[Reply]]


class ParameterError(SdsDepsError):
    """Raised when a request parameter is missing or mistyped."""


def _str_param(req: Request, name: str, required: bool = True) -> str:
    value = req.parameters.get(name)
    if value is None or value == "":
        if required:
            raise ParameterError(f"missing '{name}' parameter")
        return ""
    if not isinstance(value, str):
        raise ParameterError(f"'{name}' parameter must be a string")
    return value


def _optional_client_param(req: Request, name: str) -> ClientConfig | None:
    if req.parameters.get(name) is None:
        return None
    return _client_param(req, name)


def _client_param(req: Request, name: str) -> ClientConfig:
    value = req.parameters.get(name)
    if value is None:
        raise ParameterError(f"missing '{name}' parameter")
    if not isinstance(value, dict):
        raise ParameterError(f"'{name}' parameter must be an object")
    try:
        return ClientConfig.model_validate(value)
    except ValidationError as e:
        raise ParameterError(f"invalid '{name}' parameter: {e.errors()[0]['msg']}") from e


class DepHandler:
    """Serves DepManager operations over the wire.

    The handler builds descriptors from request parameters, lints them
    with its manager and calls the matching operation.
    """

    def __init__(self, manager: DepManager, config: DepManagerConfig) -> None:
        """Initialize the handler.

        Args:
            manager: Manager performing the operations.
            config: Configuration providing the endpoint and build manifest.
        """
        self._manager = manager
        self._config = config
        self._shutdown_event = asyncio.Event()
        self._routes: dict[str, Route] = {
            DEP_INSTALLED: self._dep_installed,
            INSTALL_DEP: self._install_dep,
            RUN_DEP: self._run_dep,
            DEP_RUNNING: self._dep_running,
            UNINSTALL_DEP: self._uninstall_dep,
            CLOSE_DEP: self._close_dep,
            HEARTBEAT: self._heartbeat,
            CLOSE: self._close,
        }

    @property
    def endpoint(self) -> ClientConfig:
        """Endpoint the handler listens on."""
        return self._config.handler

    @property
    def manager(self) -> DepManager:
        """Manager performing the operations."""
        return self._manager

    @property
    def shutdown_event(self) -> asyncio.Event:
        """Set when the handler has been asked to stop."""
        return self._shutdown_event

    def request_shutdown(self) -> None:
        """Ask serve() to stop."""
        self._shutdown_event.set()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def dispatch(self, req: Request) -> Reply:
        """Route a request to its command, converting errors to failure replies."""
        route = self._routes.get(req.command)
        if route is None:
            return req.fail(f"unknown command '{req.command}'")

        start = time.perf_counter()
        try:
            reply = await route(req)
        except SdsDepsError as e:
            log_event(
                logging.WARNING,
                DepSystemEvent(
                    event="command_failed",
                    message=f"{req.command}: {e}",
                    command=req.command,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    duration_ms=(time.perf_counter() - start) * 1000,
                ),
                _logger,
            )
            return req.fail(str(e))
        except Exception as e:
            _logger.exception(
                {
                    "event": "command_crashed",
                    "message": f"{req.command}: unexpected {type(e).__name__}",
                    "command": req.command,
                }
            )
            return req.fail(f"internal error: {e}")

        log_event(
            logging.DEBUG,
            DepSystemEvent(
                event="command_handled",
                message=req.command,
                command=req.command,
                duration_ms=(time.perf_counter() - start) * 1000,
            ),
            _logger,
        )
        return reply

    def _dep(self, req: Request, **overrides: str) -> Dep:
        return Dep.new(
            _str_param(req, "url"),
            manifest=self._config.toolchain.manifest,
            **overrides,
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def _dep_installed(self, req: Request) -> Reply:
        _str_param(req, "url")
        local_bin = _str_param(req, "local_bin", required=False)
        try:
            dep = self._dep(req, local_bin=local_bin)
        except InvalidDependencyError:
            return req.ok({"installed": False})
        installed = await self._manager.installed(self._manager.lint(dep))
        return req.ok({"installed": installed})

    async def _install_dep(self, req: Request) -> Reply:
        dep = self._dep(
            req,
            branch=_str_param(req, "branch", required=False),
            local_src=_str_param(req, "local_src", required=False),
        )
        await self._manager.install(self._manager.lint(dep), logger=_logger)
        return req.ok()

    async def _run_dep(self, req: Request) -> Reply:
        instance_id = _str_param(req, "id")
        parent = _optional_client_param(req, "parent")
        dep = self._dep(req, local_bin=_str_param(req, "local_bin", required=False))
        await self._manager.run(
            self._manager.lint(dep),
            instance_id,
            logger=logging.getLogger(f"{APP_NAME}.dep"),
            parent=parent,
        )
        return req.ok()

    async def _dep_running(self, req: Request) -> Reply:
        client = _client_param(req, "dep")
        return req.ok({"running": await self._manager.running(client)})

    async def _uninstall_dep(self, req: Request) -> Reply:
        dep = self._dep(
            req,
            local_src=_str_param(req, "local_src", required=False),
            local_bin=_str_param(req, "local_bin", required=False),
        )
        await self._manager.uninstall(self._manager.lint(dep))
        return req.ok()

    async def _close_dep(self, req: Request) -> Reply:
        client = _client_param(req, "dep")
        await self._manager.close(client)
        return req.ok()

    async def _heartbeat(self, req: Request) -> Reply:
        return req.ok()

    async def _close(self, req: Request) -> Reply:
        log_event(
            logging.INFO,
            DepSystemEvent(
                event="close_requested",
                message="Close requested over the wire",
                endpoint=self.endpoint.url(),
            ),
            _logger,
        )
        self._shutdown_event.set()
        return req.ok()

    # -------------------------------------------------------------------------
    # Serve loop
    # -------------------------------------------------------------------------

    async def start(self) -> asyncio.AbstractServer:
        """Start listening on the handler endpoint.

        Raises:
            OSError: If the endpoint cannot be bound.
        """
        server = await start_endpoint_server(self.endpoint, self.dispatch)
        log_event(
            logging.INFO,
            DepSystemEvent(
                event="handler_started",
                message=f"Listening on {self.endpoint.url()}",
                endpoint=self.endpoint.url(),
                src_path=str(self._manager.src),
                bin_path=str(self._manager.bin),
            ),
            _logger,
        )
        return server

    async def serve(self) -> None:
        """Serve until close is requested, then stop the running instances."""
        server = await self.start()
        try:
            await self._shutdown_event.wait()
        finally:
            server.close()
            try:
                await asyncio.wait_for(server.wait_closed(), timeout=_SERVER_CLOSE_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                pass  # Idle connections still open
            if not self.endpoint.is_tcp:
                self.endpoint.socket_path.unlink(missing_ok=True)
            await self._manager.shutdown()
            log_event(
                logging.INFO,
                DepSystemEvent(
                    event="handler_stopped",
                    message="Handler stopped",
                    endpoint=self.endpoint.url(),
                ),
                _logger,
            )


async def run_handler(config: DepManagerConfig) -> None:
    """Run the wire handler until a signal or a close command arrives.

    Args:
        config: Manager configuration.

    Raises:
        ConfigurationError: If the Src/Bin roots cannot be created.
        OSError: If the endpoint cannot be bound.
    """
    handler = DepHandler(DepManager.from_config(config), config)
    loop = asyncio.get_running_loop()

    def signal_handler(signum: int, frame: Any) -> None:
        """Handle shutdown signals (SIGTERM, SIGINT)."""
        log_event(
            logging.INFO,
            DepSystemEvent(
                event="shutdown_signal_received",
                message=f"Received signal {signum}, initiating shutdown",
                details={"signal": signum},
            ),
            _logger,
        )
        loop.call_soon_threadsafe(handler.request_shutdown)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    await handler.serve()
