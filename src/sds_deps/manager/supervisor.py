"""Process supervisor and running-instance registry.

Spawns dependency binaries as child processes and tracks them by a
caller-chosen id until they exit:
- Registration at spawn time (duplicate ids rejected)
- A waiter task per instance that waits for exit
- Exit notification through a single-value completion queue

States per id: spawned -> exited(ok) | exited(error). Exit is terminal and
frees the id. The registry delete and the completion push happen under
the same lock, so on_stop() never hands out a queue of an instance that
has already been removed.
"""

from __future__ import annotations

__all__ = [
    "InstanceRegistry",
    "RunningInstance",
]

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sds_deps.constants import (
    APP_NAME,
    INSTANCE_TERMINATE_TIMEOUT_SECONDS,
    OUTPUT_DRAIN_TIMEOUT_SECONDS,
)
from sds_deps.dep import LintedDep
from sds_deps.exceptions import AlreadyRunningError, ProcessExitError, SpawnError
from sds_deps.log_config import log_event
from sds_deps.models import DepSystemEvent

from .tools import forward_stream

_logger = logging.getLogger(f"{APP_NAME}.manager.supervisor")

ExitResult = ProcessExitError | None

# Poll interval for a child's return code while its pipes may still be open
_EXIT_POLL_INTERVAL_SECONDS = 0.1


async def _wait_exit(process: asyncio.subprocess.Process) -> int:
    """Wait for the child process itself to exit.

    Process.wait() can also wait for the output pipes to close, which a
    grandchild holding them may delay indefinitely. The return code is set
    as soon as the child is reaped, so it is polled alongside.
    """
    waiter = asyncio.ensure_future(process.wait())
    try:
        while process.returncode is None and not waiter.done():
            await asyncio.wait({waiter}, timeout=_EXIT_POLL_INTERVAL_SECONDS)
    finally:
        waiter.cancel()
    if process.returncode is not None:
        return process.returncode
    return waiter.result()


@dataclass
class RunningInstance:
    """One running occurrence of a dependency binary.

    Attributes:
        instance_id: Caller-chosen id, unique among running instances.
        dep: Detached copy of the linted dependency it was spawned from.
        process: Child process handle.
        done: Completion queue (capacity 1) receiving the exit result.
        started_at: When the process was spawned.
    """

    instance_id: str
    dep: LintedDep
    process: asyncio.subprocess.Process
    done: asyncio.Queue[ExitResult]
    started_at: datetime
    _waiter: asyncio.Task[None] | None = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        """OS process id."""
        return self.process.pid

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for status replies."""
        return {
            "id": self.instance_id,
            "url": self.dep.url,
            "pid": self.pid,
            "bin_path": str(self.dep.bin_path),
            "started_at": self.started_at.isoformat(),
        }


class InstanceRegistry:
    """Registry of running dependency instances.

    Every read, insert and delete goes through a single asyncio lock.
    """

    def __init__(self) -> None:
        """Initialize the registry."""
        self._instances: dict[str, RunningInstance] = {}
        self._lock = asyncio.Lock()

    async def spawn(
        self,
        instance_id: str,
        linted: LintedDep,
        args: Sequence[str],
        logger: logging.Logger,
    ) -> RunningInstance:
        """Spawn a binary and register it under instance_id.

        The duplicate check, the spawn and the insert happen in one critical
        section, so concurrent calls with the same id spawn at most once.

        Args:
            instance_id: Caller-chosen id.
            linted: Linted dependency whose binary to run.
            args: Command-line arguments for the binary.
            logger: Logger receiving the child's output.

        Returns:
            The registered instance.

        Raises:
            AlreadyRunningError: If instance_id is registered.
            SpawnError: If the OS refuses to start the binary.
        """
        detached = linted.model_copy(deep=True)
        command = [str(detached.bin_path), *args]

        async with self._lock:
            if instance_id in self._instances:
                raise AlreadyRunningError(instance_id)

            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise SpawnError(f"cannot start {command[0]}: {e}") from e

            instance = RunningInstance(
                instance_id=instance_id,
                dep=detached,
                process=process,
                done=asyncio.Queue(maxsize=1),
                started_at=datetime.now(timezone.utc),
            )
            self._instances[instance_id] = instance
            instance._waiter = asyncio.create_task(self._wait(instance, logger))

        log_event(
            logging.INFO,
            DepSystemEvent(
                event="instance_spawned",
                message=f"Started '{instance_id}' (pid {process.pid})",
                url=detached.url,
                instance_id=instance_id,
                bin_path=str(detached.bin_path),
                details={"args": list(args)},
            ),
            logger,
        )
        return instance

    async def _wait(self, instance: RunningInstance, logger: logging.Logger) -> None:
        """Wait for an instance to exit, then publish the result and free its id.

        Output is forwarded while the child runs. Once it has exited the
        pumps get OUTPUT_DRAIN_TIMEOUT_SECONDS to flush what is buffered and
        are then cancelled, so pipes inherited by grandchildren cannot delay
        the exit notification.
        """
        process = instance.process
        pumps = asyncio.gather(
            forward_stream(process.stdout, logger, logging.INFO, "stdout"),
            forward_stream(process.stderr, logger, logging.WARNING, "stderr"),
        )
        try:
            returncode = await _wait_exit(process)
        except asyncio.CancelledError:
            pumps.cancel()
            raise

        try:
            await asyncio.wait_for(pumps, timeout=OUTPUT_DRAIN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            _logger.debug(
                {
                    "event": "output_drain_timeout",
                    "message": f"'{instance.instance_id}' exited with its output pipes still open",
                    "instance_id": instance.instance_id,
                }
            )

        result: ExitResult = None if returncode == 0 else ProcessExitError(instance.instance_id, returncode)

        async with self._lock:
            if self._instances.get(instance.instance_id) is instance:
                del self._instances[instance.instance_id]
            instance.done.put_nowait(result)

        if result is None:
            log_event(
                logging.INFO,
                DepSystemEvent(
                    event="instance_exited",
                    message=f"'{instance.instance_id}' exited",
                    url=instance.dep.url,
                    instance_id=instance.instance_id,
                ),
                logger,
            )
        else:
            log_event(
                logging.WARNING,
                DepSystemEvent(
                    event="instance_failed",
                    message=str(result),
                    url=instance.dep.url,
                    instance_id=instance.instance_id,
                    error_type=type(result).__name__,
                    error_message=str(result),
                    details={"returncode": returncode},
                ),
                logger,
            )

    async def on_stop(self, instance_id: str) -> asyncio.Queue[ExitResult] | None:
        """Completion queue of a registered instance, None if unknown or exited."""
        async with self._lock:
            instance = self._instances.get(instance_id)
            return instance.done if instance is not None else None

    async def list_instances(self) -> list[dict[str, Any]]:
        """List all registered instances."""
        async with self._lock:
            return [instance.to_dict() for instance in self._instances.values()]

    async def terminate_all(self, timeout: float = INSTANCE_TERMINATE_TIMEOUT_SECONDS) -> None:
        """Terminate every registered instance and wait for their waiters.

        Operational fallback for when the hosting process shuts down;
        children still running are sent SIGTERM, then SIGKILL after timeout.
        """
        async with self._lock:
            instances = list(self._instances.values())

        for instance in instances:
            try:
                instance.process.terminate()
            except ProcessLookupError:
                pass  # Already exited

        for instance in instances:
            if instance._waiter is None:
                continue
            try:
                await asyncio.wait_for(asyncio.shield(instance._waiter), timeout=timeout)
            except asyncio.TimeoutError:
                _logger.warning(
                    {
                        "event": "instance_kill",
                        "message": f"'{instance.instance_id}' ignored SIGTERM, killing",
                        "instance_id": instance.instance_id,
                    }
                )
                try:
                    instance.process.kill()
                except ProcessLookupError:
                    pass
                await instance._waiter
