"""Dependency lifecycle manager.

- manager.py: DepManager facade (lint, install, run, running, close, uninstall)
- source.py: git clone of remote sources
- builder.py: prepare + compile steps
- supervisor.py: running-instance registry and exit waiters
- liveness.py: heartbeat probe and remote close
- interface.py: DepManagerProtocol shared with the wire client
"""

from .interface import DepManagerProtocol
from .manager import DepManager
from .supervisor import InstanceRegistry, RunningInstance

__all__ = [
    "DepManager",
    "DepManagerProtocol",
    "InstanceRegistry",
    "RunningInstance",
]
