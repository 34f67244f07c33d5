"""Dependency lifecycle manager.

Composes the linter, source fetcher, builder, process supervisor,
liveness prober and remote closer into the lifecycle of a dependency:

    dep = Dep.new("github.com/ahmetson/proxy-lib")
    linted = manager.lint(dep)
    await manager.install(linted)
    await manager.run(linted, "proxy-1", parent=parent)
    done = await manager.on_stop("proxy-1")
    ...
    await manager.close(proxy_endpoint)

Ownership: paths under the manager's Src/Bin roots are manageable and may
be created, overwritten or deleted. Caller-supplied paths outside the
roots are never mutated.
"""

from __future__ import annotations

__all__ = ["DepManager"]

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Any

from sds_deps.config import DepManagerConfig, ToolchainConfig
from sds_deps.constants import APP_NAME, DEFAULT_PROBE_TIMEOUT_SECONDS
from sds_deps.dep import Dep, LintedDep, bin_file_path, is_under, url_to_file_name
from sds_deps.exceptions import (
    ConfigurationError,
    DepNotLintedError,
    NotInstalledError,
    NotManageableError,
    SdsDepsError,
)
from sds_deps.log_config import log_event
from sds_deps.models import ClientConfig, DepSystemEvent

from .builder import build
from .liveness import close_remote, probe
from .source import fetch_src, src_exist
from .supervisor import ExitResult, InstanceRegistry

_logger = logging.getLogger(f"{APP_NAME}.manager")


def _require_linted(dep: Dep | LintedDep | None, operation: str) -> LintedDep:
    if not isinstance(dep, LintedDep):
        raise DepNotLintedError(operation)
    return dep


class DepManager:
    """Manages installation and supervision of dependencies.

    Implements DepManagerProtocol, plus lint() and on_stop() which only make
    sense in-process.
    """

    def __init__(
        self,
        src_dir: str | Path,
        bin_dir: str | Path,
        *,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        toolchain: ToolchainConfig | None = None,
    ) -> None:
        """Initialize the manager and create its root directories.

        Args:
            src_dir: Root of manager-owned source checkouts.
            bin_dir: Root of manager-owned binaries.
            probe_timeout: Deadline for running() and close(), in seconds.
            toolchain: Fetch/build tools. Defaults to git + go.

        Raises:
            ConfigurationError: If either root cannot be created.
        """
        self._src = Path(src_dir).expanduser().resolve()
        self._bin = Path(bin_dir).expanduser().resolve()
        for root in (self._bin, self._src):
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(f"Cannot create {root}: {e}") from e

        self._probe_timeout = probe_timeout
        self._toolchain = toolchain or ToolchainConfig()
        self._registry = InstanceRegistry()

    @classmethod
    def from_config(cls, config: DepManagerConfig) -> DepManager:
        """Create a manager from configuration."""
        return cls(
            config.src_path,
            config.bin_path,
            probe_timeout=config.probe_timeout_seconds,
            toolchain=config.toolchain,
        )

    @property
    def src(self) -> Path:
        """Source root."""
        return self._src

    @property
    def bin(self) -> Path:
        """Binary root."""
        return self._bin

    @property
    def probe_timeout(self) -> float:
        """Deadline for running() and close(), in seconds."""
        return self._probe_timeout

    @property
    def toolchain(self) -> ToolchainConfig:
        """Fetch/build tools."""
        return self._toolchain

    # -------------------------------------------------------------------------
    # Linter
    # -------------------------------------------------------------------------

    def lint(self, dep: Dep | LintedDep | None) -> LintedDep | None:
        """Resolve a dependency against the manager's roots.

        Pure with respect to the filesystem: computes paths only.

        Args:
            dep: Descriptor, or an already linted dependency.

        Returns:
            LintedDep (the same object if already linted), or None for None.
        """
        if dep is None:
            return None
        if isinstance(dep, LintedDep):
            return dep

        file_name = url_to_file_name(dep.url)

        if dep.local_src:
            src_path = Path(dep.local_src)
            manageable_src = is_under(src_path, self._src)
        else:
            src_path = self._src / file_name
            manageable_src = True

        if dep.local_bin:
            # A caller-supplied binary is always caller-owned
            bin_path = Path(dep.local_bin)
            manageable_bin = False
        else:
            bin_path = bin_file_path(self._bin, file_name)
            manageable_bin = True

        return LintedDep(
            dep=dep,
            src_path=src_path,
            bin_path=bin_path,
            manageable_src=manageable_src,
            manageable_bin=manageable_bin,
        )

    # -------------------------------------------------------------------------
    # Install / Uninstall
    # -------------------------------------------------------------------------

    async def installed(self, dep: Dep | LintedDep | None) -> bool:
        """True iff dep is linted and its binary exists. Never raises."""
        if not isinstance(dep, LintedDep):
            return False
        return dep.bin_path.is_file()

    async def install(self, dep: Dep | LintedDep | None, logger: logging.Logger | None = None) -> None:
        """Fetch the source code if absent, then build the binary.

        Always rebuilds, overwriting an existing binary. Never re-fetches an
        existing source directory. No rollback: a failed build after a
        successful fetch leaves the source in place.

        Args:
            dep: Linted dependency.
            logger: Logger receiving progress and tool output.

        Raises:
            DepNotLintedError: If dep is not linted.
            NotManageableError: If the binary is caller-owned, or the source
                is absent and caller-owned.
            ToolError: If fetching or building fails.
        """
        linted = _require_linted(dep, "install")
        log = logger or _logger

        if not linted.manageable_bin:
            raise NotManageableError(f"install '{linted.url}': binary not manageable ({linted.bin_path})")

        if not src_exist(linted):
            if not linted.manageable_src:
                raise NotManageableError(
                    f"install '{linted.url}': no source and not manageable ({linted.src_path})"
                )
            await fetch_src(linted, log, git=self._toolchain.git)

        await build(linted, self._toolchain, log)

        log_event(
            logging.INFO,
            DepSystemEvent(
                event="dep_installed",
                message=f"Installed {linted.url}",
                url=linted.url,
                src_path=str(linted.src_path),
                bin_path=str(linted.bin_path),
            ),
            log,
        )

    async def uninstall(self, dep: Dep | LintedDep | None) -> None:
        """Delete the dependency's manager-owned source and binary.

        Caller-owned paths are skipped. Absent artifacts are not an error.

        Args:
            dep: Linted dependency.

        Raises:
            DepNotLintedError: If dep is not linted.
            SdsDepsError: If a deletion fails.
        """
        linted = _require_linted(dep, "uninstall")

        if not linted.manageable_src and not linted.manageable_bin:
            return

        if linted.manageable_src and src_exist(linted):
            try:
                await asyncio.to_thread(shutil.rmtree, linted.src_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                raise SdsDepsError(f"uninstall '{linted.url}': delete {linted.src_path}: {e}") from e

        if linted.manageable_bin:
            try:
                linted.bin_path.unlink(missing_ok=True)
            except OSError as e:
                raise SdsDepsError(f"uninstall '{linted.url}': delete {linted.bin_path}: {e}") from e

        log_event(
            logging.INFO,
            DepSystemEvent(
                event="dep_uninstalled",
                message=f"Uninstalled {linted.url}",
                url=linted.url,
                details={
                    "src_deleted": linted.manageable_src,
                    "bin_deleted": linted.manageable_bin,
                },
            ),
            _logger,
        )

    # -------------------------------------------------------------------------
    # Run / OnStop
    # -------------------------------------------------------------------------

    async def run(
        self,
        dep: Dep | LintedDep | None,
        instance_id: str,
        logger: logging.Logger | None = None,
        parent: ClientConfig | None = None,
    ) -> None:
        """Spawn the dependency's binary as instance_id.

        Returns once the process is launched; exit is reported through
        on_stop().

        The binary receives:
            --url=<dependency url> --id=<instance_id> [--parent=<parent url>]

        Args:
            dep: Linted dependency.
            instance_id: Caller-chosen id, unique among running instances.
            logger: Parent logger for the child's output.
            parent: Endpoint the dependency should connect back to.

        Raises:
            DepNotLintedError: If dep is not linted.
            AlreadyRunningError: If instance_id is still registered.
            NotInstalledError: If the binary does not exist.
            SpawnError: If the OS refuses to start the binary.
        """
        linted = _require_linted(dep, "run")
        if not instance_id:
            raise SdsDepsError("run: instance id is empty")

        if not await self.installed(linted):
            raise NotInstalledError(linted.url, str(linted.bin_path))

        args = [f"--url={linted.url}", f"--id={instance_id}"]
        if parent is not None:
            args.append(f"--parent={parent.url()}")

        child_logger = (logger or logging.getLogger(f"{APP_NAME}.dep")).getChild(instance_id)
        await self._registry.spawn(instance_id, linted, args, child_logger)

    async def on_stop(self, instance_id: str) -> asyncio.Queue[ExitResult] | None:
        """Completion queue of a running instance.

        The queue yields exactly one value: None on a clean exit, or a
        ProcessExitError. By the time the value is available the id has
        been removed from the registry.

        Returns:
            The queue, or None if the id is unknown or already exited.
        """
        return await self._registry.on_stop(instance_id)

    async def instances(self) -> list[dict[str, Any]]:
        """Running instances, for status reporting."""
        return await self._registry.list_instances()

    # -------------------------------------------------------------------------
    # Running / Close
    # -------------------------------------------------------------------------

    async def running(self, client: ClientConfig) -> bool:
        """Probe whether a dependency endpoint is serving.

        Works for dependencies this manager did not spawn. Bounded by
        probe_timeout; timeouts and refusals yield False.
        """
        return await probe(client, self._probe_timeout)

    async def close(self, client: ClientConfig) -> None:
        """Ask a dependency to shut down through its control endpoint.

        Independent of the instance registry: the waiter started by run()
        clears the id once the process actually exits.

        Raises:
            RemoteCloseError: On connection failure, timeout or a failure reply.
        """
        await close_remote(client, self._probe_timeout)
        log_event(
            logging.INFO,
            DepSystemEvent(
                event="dep_closed",
                message=f"Closed {client.url()}",
                endpoint=client.url(),
            ),
            _logger,
        )

    async def shutdown(self) -> None:
        """Terminate instances that are still running.

        Used by the hosting process on exit.
        """
        await self._registry.terminate_all()
