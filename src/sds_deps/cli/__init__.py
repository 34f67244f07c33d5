"""Command-line interface for sds-deps.

Provides commands for serving the dependency handler, managing
dependencies through it, and inspecting configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
