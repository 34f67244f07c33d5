"""Logging configuration.

Owns the sds-deps logger configuration (handlers, formatters).
Other modules get their own logger reference via:
    _logger = logging.getLogger(f"{APP_NAME}.<area>")

Python loggers are singletons by name, so every child logger propagates
to the root "sds-deps" logger configured here. This module owns the
configuration; others just call log_event().
"""

from __future__ import annotations

__all__ = [
    "configure_logging",
    "log_event",
]

import logging

from sds_deps.config import DepManagerConfig, get_system_log_path
from sds_deps.constants import APP_NAME
from sds_deps.models import DepSystemEvent
from sds_deps.utils.logging.iso_formatter import ISO8601Formatter

_logger = logging.getLogger(APP_NAME)
_logger.setLevel(logging.INFO)
_logger.propagate = False

_file_handler_configured: bool = False


class _ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for console output."""
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname} [{record.name}]: {msg}"
        return f"{record.levelname} [{record.name}]: {record.getMessage()}"


# Initialize with stderr-only until config is loaded
if not _logger.handlers:
    _stderr_handler = logging.StreamHandler()
    _stderr_handler.setFormatter(_ConsoleFormatter())
    _logger.addHandler(_stderr_handler)


def configure_logging(config: DepManagerConfig, level: int = logging.INFO) -> None:
    """Configure logging with stderr and file handlers.

    Sets up:
    - stderr handler: level+ for operator visibility
    - file handler: WARNING+ only (errors and issues worth reviewing)

    Args:
        config: Configuration with log directory.
        level: Console log level.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()
    _logger.setLevel(min(level, logging.WARNING))

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(_ConsoleFormatter())
    _logger.addHandler(stderr_handler)

    log_path = get_system_log_path(config)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass  # stderr will still work

    try:
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(ISO8601Formatter())
        _logger.addHandler(file_handler)
        _file_handler_configured = True
    except OSError as e:
        log_event(
            logging.WARNING,
            DepSystemEvent(
                event="file_logging_failed",
                message="Failed to configure file logging",
                error_type=type(e).__name__,
                error_message=str(e),
            ),
        )


def log_event(level: int, event: DepSystemEvent, logger: logging.Logger | None = None) -> None:
    """Log a DepSystemEvent at the specified level.

    Serializes the event to a dict (excluding None values) and logs it.
    The ISO8601Formatter adds the timestamp during serialization.

    Args:
        level: Logging level (e.g., logging.INFO, logging.WARNING).
        event: The event to log.
        logger: Target logger. Defaults to the application logger.
    """
    (logger or _logger).log(level, event.model_dump(exclude_none=True))
