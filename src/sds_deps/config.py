"""Configuration for sds-deps.

Defines the configuration model of the dependency manager and its
wire handler. Config is stored at the OS-appropriate location; the
source and binary roots can be overridden through the environment.

Example usage:
    # Load from config file (defaults if not exists)
    config = load_config()

    # Save configuration
    save_config(config)
"""

from __future__ import annotations

__all__ = [
    "DepManagerConfig",
    "ToolchainConfig",
    "get_app_dir",
    "get_config_path",
    "get_log_dir",
    "get_system_log_path",
    "load_config",
    "save_config",
]

import json
import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

import click
from platformdirs import user_log_dir
from pydantic import BaseModel, Field, ValidationError

from sds_deps.constants import (
    APP_NAME,
    BIN_KEY,
    DEFAULT_BIN_DIR,
    DEFAULT_BUILD_COMMAND,
    DEFAULT_GIT_COMMAND,
    DEFAULT_MANIFEST,
    DEFAULT_PREPARE_COMMAND,
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    DEFAULT_SRC_DIR,
    HANDLER_ID,
    SRC_KEY,
)
from sds_deps.exceptions import ConfigurationError
from sds_deps.models import ClientConfig

_logger = logging.getLogger(f"{APP_NAME}.config")


class ToolchainConfig(BaseModel):
    """External tools used to fetch and build dependencies.

    Attributes:
        git: Git executable used for cloning.
        manifest: File a local source directory must contain to be buildable.
        prepare: Dependency-normalization step, run in the source directory.
        build: Compile step. "{bin}" and "{src}" are substituted.
    """

    git: str = Field(default=DEFAULT_GIT_COMMAND, min_length=1)
    manifest: str = Field(default=DEFAULT_MANIFEST, min_length=1)
    prepare: list[str] = Field(default_factory=lambda: list(DEFAULT_PREPARE_COMMAND))
    build: list[str] = Field(default_factory=lambda: list(DEFAULT_BUILD_COMMAND), min_length=1)

    model_config = {"extra": "ignore"}


class DepManagerConfig(BaseModel):
    """Dependency manager configuration.

    Attributes:
        src_dir: Root of manager-owned source checkouts (SERVICE_DEPS_SRC).
        bin_dir: Root of manager-owned binaries (SERVICE_DEPS_BIN).
        probe_timeout_seconds: Deadline for liveness probes and close requests.
        log_dir: Base directory for logs. Logs stored in <log_dir>/sds-deps/.
        handler: Endpoint the wire handler listens on.
        toolchain: External fetch/build tools.
    """

    src_dir: str = Field(default=DEFAULT_SRC_DIR, min_length=1)
    bin_dir: str = Field(default=DEFAULT_BIN_DIR, min_length=1)
    probe_timeout_seconds: float = Field(
        default=DEFAULT_PROBE_TIMEOUT_SECONDS,
        gt=0,
        le=60,
        description="Liveness probe and remote close deadline",
    )
    log_dir: str = Field(
        default_factory=lambda: user_log_dir(),
        min_length=1,
        description="Base directory for logs",
    )
    handler: ClientConfig = Field(default_factory=lambda: ClientConfig(id=HANDLER_ID))
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat

    @property
    def src_path(self) -> Path:
        """Absolute source root."""
        return Path(self.src_dir).expanduser().resolve()

    @property
    def bin_path(self) -> Path:
        """Absolute binary root."""
        return Path(self.bin_dir).expanduser().resolve()


def get_app_dir() -> Path:
    """Get the OS-appropriate application directory.

    Uses click.get_app_dir() which returns:
    - macOS: ~/Library/Application Support/sds-deps
    - Linux: ~/.config/sds-deps (XDG compliant)
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\sds-deps

    Returns:
        Path to the application directory.
    """
    return Path(click.get_app_dir(APP_NAME))


def get_config_path() -> Path:
    """Get the full path to the config file."""
    return get_app_dir() / "config.json"


def get_log_dir(config: DepManagerConfig) -> Path:
    """Get log directory (<log_dir>/sds-deps/)."""
    return Path(config.log_dir).expanduser() / APP_NAME


def get_system_log_path(config: DepManagerConfig) -> Path:
    """Get full path to the system log file (<log_dir>/sds-deps/system.jsonl)."""
    return get_log_dir(config) / "system.jsonl"


def _apply_env_overrides(data: dict, env: Mapping[str, str]) -> dict:
    """Apply SERVICE_DEPS_SRC / SERVICE_DEPS_BIN overrides on top of file data."""
    if env.get(SRC_KEY):
        data["src_dir"] = env[SRC_KEY]
    if env.get(BIN_KEY):
        data["bin_dir"] = env[BIN_KEY]
    return data


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> DepManagerConfig:
    """Load configuration from file and environment.

    If the config file doesn't exist, defaults are used. Environment
    variables SERVICE_DEPS_SRC and SERVICE_DEPS_BIN override the roots.

    Args:
        path: Config file path. Defaults to get_config_path().
        env: Environment mapping. Defaults to os.environ.

    Returns:
        DepManagerConfig: Validated configuration.

    Raises:
        ConfigurationError: If the file exists but is unreadable or invalid.
    """
    config_path = path or get_config_path()
    environ = os.environ if env is None else env

    data: dict = {}
    if config_path.exists():
        try:
            with config_path.open(encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid config in {config_path}: expected a JSON object")

    try:
        config = DepManagerConfig.model_validate(_apply_env_overrides(data, environ))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {config_path}: {e}") from e

    _logger.debug(
        {
            "event": "config_loaded",
            "message": f"Configuration loaded (src={config.src_dir}, bin={config.bin_dir})",
            "details": {"config_path": str(config_path), "file_exists": bool(data)},
        }
    )
    return config


def save_config(config: DepManagerConfig, path: Path | None = None) -> Path:
    """Save configuration to file.

    Creates the config directory if it doesn't exist.
    Sets secure permissions (0600) where the platform allows.

    Args:
        config: Configuration to save.
        path: Target path. Defaults to get_config_path().

    Returns:
        Path the configuration was written to.

    Raises:
        OSError: If unable to write config file.
    """
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with config_path.open("w", encoding="utf-8") as f:
        json.dump(config.model_dump(mode="json"), f, indent=2)
        f.write("\n")

    if sys.platform != "win32":
        try:
            config_path.chmod(0o600)
        except OSError:
            pass  # Permission changes might fail on some systems

    return config_path
