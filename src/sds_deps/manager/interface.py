"""Protocol definition for dependency managers.

Defines the lifecycle operations shared by the in-process DepManager and
the wire-backed DepClient, so callers such as a proxy-routing component
can work with either without caring where the manager lives.

Structural subtyping: implementations do not inherit from this protocol.

Not part of the protocol:
- lint(): resolution against the manager's roots only makes sense where
  the roots are; remote callers send descriptors and the handler lints.
- on_stop(): hands out an in-memory completion queue, local by nature.
"""

from __future__ import annotations

__all__ = [
    "DepManagerProtocol",
]

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sds_deps.dep import Dep, LintedDep
    from sds_deps.models import ClientConfig


@runtime_checkable
class DepManagerProtocol(Protocol):
    """Protocol for dependency lifecycle managers.

    Required methods:
    - installed(): Is the dependency's binary present
    - install(): Fetch (if needed) and build
    - uninstall(): Remove manager-owned artifacts
    - run(): Spawn the binary under a caller-chosen id
    - running(): Bounded-time liveness probe of any dependency endpoint
    - close(): Graceful shutdown through the dependency's control endpoint

    Concurrency:
    - All methods must be safe for concurrent calls from different tasks
    """

    async def installed(self, dep: "Dep | LintedDep | None") -> bool:
        """Check whether the dependency's binary exists. Never raises."""
        ...

    async def install(self, dep: "Dep | LintedDep | None", logger: logging.Logger | None = None) -> None:
        """Fetch the source if absent, then build the binary."""
        ...

    async def uninstall(self, dep: "Dep | LintedDep | None") -> None:
        """Delete the manager-owned source and binary of the dependency."""
        ...

    async def run(
        self,
        dep: "Dep | LintedDep | None",
        instance_id: str,
        logger: logging.Logger | None = None,
        parent: "ClientConfig | None" = None,
    ) -> None:
        """Spawn the dependency's binary as instance_id."""
        ...

    async def running(self, client: "ClientConfig") -> bool:
        """Probe whether the dependency endpoint is serving."""
        ...

    async def close(self, client: "ClientConfig") -> None:
        """Ask the dependency to shut down."""
        ...
