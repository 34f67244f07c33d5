"""Pydantic models shared by the manager, handler and client.

This module contains two categories of models:

Descriptor Models (FrozenModel-based):
- FrozenModel: Base class for immutable models
- ClientConfig: Connection descriptor of a remote endpoint

Logging Models:
- DepSystemEvent: System log entries for the dependency manager
"""

from __future__ import annotations

__all__ = [
    # Descriptor Models
    "ClientConfig",
    "FrozenModel",
    # Logging Models
    "DepSystemEvent",
]

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from sds_deps.constants import get_socket_path


# =============================================================================
# Descriptor Models
# =============================================================================


class FrozenModel(BaseModel):
    """Base class for immutable Pydantic models.

    Descriptor models inherit from this class to ensure
    immutability after creation.
    """

    model_config = ConfigDict(frozen=True)


class ClientConfig(FrozenModel):
    """Connection descriptor of a remote endpoint.

    Describes a dependency, the parent a dependency connects back to,
    or the wire handler itself.

    Endpoints with a port listen on TCP at host:port. Endpoints without
    a port (port == 0) listen on a Unix socket derived from their id.

    Attributes:
        service_url: Source locator of the service owning the endpoint.
        id: Endpoint id, unique per host. Letters, digits, "_", "." and "-",
            not starting with "." or "-".
        port: TCP port, 0 for a Unix socket endpoint.
        host: TCP host (ignored for Unix socket endpoints).
    """

    service_url: str = ""
    # File-name safe: the id names a socket under RUNTIME_DIR
    id: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")
    port: int = Field(default=0, ge=0, le=65535)
    host: str = "127.0.0.1"

    model_config = ConfigDict(frozen=True, extra="ignore")

    @property
    def is_tcp(self) -> bool:
        """True if the endpoint listens on TCP."""
        return self.port > 0

    @property
    def socket_path(self) -> Path:
        """Unix socket path for id-addressed endpoints."""
        return get_socket_path(self.id)

    def url(self) -> str:
        """Render the endpoint as a URL passed to child processes.

        Returns:
            "tcp://host:port" or "unix://<socket path>".
        """
        if self.is_tcp:
            return f"tcp://{self.host}:{self.port}"
        return f"unix://{self.socket_path}"


# =============================================================================
# Logging Models
# =============================================================================


class DepSystemEvent(BaseModel):
    """One system log entry (<log_dir>/sds-deps/system.jsonl).

    Used for INFO, WARNING, ERROR, and CRITICAL events related to
    dependency lifecycle operations and the wire handler.

    Note: 'time' is None when created, populated by ISO8601Formatter during logging.
    """

    # --- core ---
    time: Optional[str] = Field(
        None,
        description="ISO 8601 timestamp (UTC), added by formatter during serialization",
    )
    event: Optional[str] = Field(
        None,
        description="Machine-friendly event name, e.g. 'dep_installed', 'instance_exited'",
    )
    message: str = Field(description="Human-readable log message")

    # --- dependency context ---
    url: Optional[str] = Field(
        None,
        description="Source locator of the affected dependency",
    )
    instance_id: Optional[str] = Field(
        None,
        description="Run id of the affected instance",
    )
    src_path: Optional[str] = Field(
        None,
        description="Resolved source directory",
    )
    bin_path: Optional[str] = Field(
        None,
        description="Resolved binary path",
    )
    endpoint: Optional[str] = Field(
        None,
        description="Remote endpoint URL, e.g. 'tcp://127.0.0.1:4001'",
    )

    # --- wire context ---
    command: Optional[str] = Field(
        None,
        description="Wire command name, e.g. 'install-dep'",
    )
    duration_ms: Optional[float] = Field(
        None,
        description="Operation duration in milliseconds",
    )

    # --- error details ---
    error_type: Optional[str] = Field(
        None,
        description="Exception class name, e.g. 'ToolError'",
    )
    error_message: Optional[str] = Field(
        None,
        description="Short error text from exception",
    )

    # --- additional structured details ---
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional context as key-value pairs",
    )

    model_config = ConfigDict(extra="allow")
