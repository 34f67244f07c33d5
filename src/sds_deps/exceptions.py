"""Custom exceptions for sds-deps.

This module contains all custom exceptions used throughout the package.
Exceptions are organized into four categories:

Precondition Errors (returned synchronously, never retried):
    - DepNotLintedError: Operation on a dependency that was not linted
    - AlreadyRunningError: Run id is already registered
    - NotInstalledError: Run on a dependency without a binary
    - NotManageableError: Mutation of a caller-owned path
    - InvalidDependencyError: Descriptor rejected at construction

External Tool Errors (propagated with context):
    - ToolError: git or build step exited unsuccessfully

Process Errors:
    - SpawnError: Child could not be started (synchronous)
    - ProcessExitError: Child exited with a failure code (delivered via on_stop)

Transport Errors:
    - TransportError: Endpoint unreachable or timed out
    - RemoteCloseError: Dependency refused or failed to close
    - RemoteCallError: Wire handler replied with a failure

Usage:
    from sds_deps.exceptions import DepNotLintedError, ToolError
"""

from __future__ import annotations

__all__ = [
    "AlreadyRunningError",
    "ConfigurationError",
    "DepNotLintedError",
    "InvalidDependencyError",
    "NotInstalledError",
    "NotManageableError",
    "ProcessExitError",
    "RemoteCallError",
    "RemoteCloseError",
    "SdsDepsError",
    "SpawnError",
    "ToolError",
    "TransportError",
]

from collections.abc import Sequence


class SdsDepsError(Exception):
    """Base exception for all sds-deps errors."""


class ConfigurationError(SdsDepsError):
    """Configuration is invalid or the manager roots cannot be created.

    The only failure that is fatal to the manager itself.
    """


# =============================================================================
# Precondition Errors
# =============================================================================


class DepNotLintedError(SdsDepsError):
    """Raised when an operation receives a dependency that was not linted."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation}: dependency is not linted")
        self.operation = operation


class AlreadyRunningError(SdsDepsError):
    """Raised when a run id is already present in the instance registry."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"'{instance_id}' is already running")
        self.instance_id = instance_id


class NotInstalledError(SdsDepsError):
    """Raised when running a dependency whose binary does not exist."""

    def __init__(self, url: str, bin_path: str) -> None:
        super().__init__(f"'{url}' is not installed (no binary at {bin_path})")
        self.url = url
        self.bin_path = bin_path


class NotManageableError(SdsDepsError):
    """Raised when a mutation targets a path the manager does not own."""


class InvalidDependencyError(SdsDepsError, ValueError):
    """Raised when a dependency descriptor cannot be constructed.

    Subclasses ValueError so pydantic validators can raise it directly.
    """


# =============================================================================
# External Tool Errors
# =============================================================================


class ToolError(SdsDepsError):
    """An external tool (git, build toolchain) failed.

    Attributes:
        command: The command line that was executed.
        returncode: Exit status, or None if the tool could not be started.
    """

    def __init__(self, command: Sequence[str], returncode: int | None, reason: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        detail = reason or f"exit status {returncode}"
        super().__init__(f"'{' '.join(self.command)}' failed: {detail}")


# =============================================================================
# Process Errors
# =============================================================================


class SpawnError(SdsDepsError):
    """The dependency binary could not be started."""


class ProcessExitError(SdsDepsError):
    """A running dependency exited with a non-zero status.

    Delivered through the completion queue returned by on_stop(), never raised
    from run().
    """

    def __init__(self, instance_id: str, returncode: int) -> None:
        super().__init__(f"'{instance_id}' exited with status {returncode}")
        self.instance_id = instance_id
        self.returncode = returncode


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(SdsDepsError):
    """An endpoint could not be reached or did not reply in time."""


class RemoteCloseError(SdsDepsError):
    """A dependency could not be closed through its control endpoint."""


class RemoteCallError(SdsDepsError):
    """The wire handler replied to a command with a failure."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(f"{command}: {message}")
        self.command = command
        self.message = message
