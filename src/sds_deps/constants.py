"""Application-wide constants for sds-deps.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Configuration keys
    "SRC_KEY",
    "BIN_KEY",
    "DEFAULT_SRC_DIR",
    "DEFAULT_BIN_DIR",
    # Build toolchain
    "DEFAULT_MANIFEST",
    "DEFAULT_GIT_COMMAND",
    "DEFAULT_PREPARE_COMMAND",
    "DEFAULT_BUILD_COMMAND",
    # Liveness and remote requests
    "DEFAULT_PROBE_TIMEOUT_SECONDS",
    "PROBE_RETRY_INTERVAL_SECONDS",
    "DEFAULT_REQUEST_TIMEOUT_SECONDS",
    # Runtime directory (UDS sockets)
    "RUNTIME_DIR",
    "HANDLER_ID",
    "get_socket_path",
    # Shutdown
    "INSTANCE_TERMINATE_TIMEOUT_SECONDS",
    "OUTPUT_DRAIN_TIMEOUT_SECONDS",
]

from pathlib import Path

from platformdirs import user_runtime_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, logger names, etc.
APP_NAME: str = "sds-deps"

# ============================================================================
# Configuration Keys
# ============================================================================

# Environment variables that override the source and binary roots
SRC_KEY: str = "SERVICE_DEPS_SRC"
BIN_KEY: str = "SERVICE_DEPS_BIN"

# Default roots, relative to the working directory of the hosting service
DEFAULT_SRC_DIR: str = "./_sds/src"
DEFAULT_BIN_DIR: str = "./_sds/bin"

# ============================================================================
# Build Toolchain
# ============================================================================

# File that must exist in a source directory for it to be buildable
DEFAULT_MANIFEST: str = "go.mod"

DEFAULT_GIT_COMMAND: str = "git"

# Dependency normalization step, run inside the source directory
DEFAULT_PREPARE_COMMAND: tuple[str, ...] = ("go", "mod", "tidy")

# Compile step. {bin} and {src} are substituted with the resolved paths.
DEFAULT_BUILD_COMMAND: tuple[str, ...] = ("go", "build", "-o", "{bin}")

# ============================================================================
# Liveness and Remote Requests
# ============================================================================

DEFAULT_PROBE_TIMEOUT_SECONDS: float = 1.0

# Delay between connection attempts while a probe deadline is still open
PROBE_RETRY_INTERVAL_SECONDS: float = 0.1

# Deadline for a wire client request to the handler (install-dep has none)
DEFAULT_REQUEST_TIMEOUT_SECONDS: float = 30.0

# ============================================================================
# Runtime Directory (UDS)
# ============================================================================

# Sockets of endpoints that are addressed by id rather than by port.
# - macOS: ~/Library/Caches/TemporaryItems/sds-deps/
# - Linux: /run/user/<uid>/sds-deps/
RUNTIME_DIR: Path = Path(user_runtime_dir(APP_NAME))

# Id of the wire handler endpoint
HANDLER_ID: str = "dep_handler"


def get_socket_path(endpoint_id: str) -> Path:
    """Get the Unix socket path of an endpoint addressed by id.

    Args:
        endpoint_id: Endpoint id (e.g., "dep_handler", "svc-1").

    Returns:
        Path to <RUNTIME_DIR>/<endpoint_id>.sock.
    """
    return RUNTIME_DIR / f"{endpoint_id}.sock"


# ============================================================================
# Shutdown
# ============================================================================

# How long shutdown() waits for a terminated child before killing it
INSTANCE_TERMINATE_TIMEOUT_SECONDS: float = 5.0

# How long the waiter keeps forwarding output after a child has exited.
# Grandchildren that inherited the pipes can hold them open indefinitely.
OUTPUT_DRAIN_TIMEOUT_SECONDS: float = 0.5
