"""Helpers shared by the commands that talk to a running handler."""

from __future__ import annotations

__all__ = [
    "get_config",
    "handler_client",
    "run_remote",
]

import asyncio
import sys
from collections.abc import Coroutine
from typing import Any, TypeVar

import click

from sds_deps.client import DepClient
from sds_deps.config import DepManagerConfig, load_config
from sds_deps.exceptions import ConfigurationError, SdsDepsError, TransportError

from ..styling import style_dim, style_error

T = TypeVar("T")


def get_config(ctx: click.Context) -> DepManagerConfig:
    """Load the configuration selected by the group's --config option.

    Exits with status 1 if the file is invalid.
    """
    path = (ctx.obj or {}).get("config_path")
    try:
        return load_config(path)
    except ConfigurationError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)


def handler_client(ctx: click.Context) -> DepClient:
    """Build a client for the configured handler endpoint."""
    return DepClient(get_config(ctx).handler)


def run_remote(call: Coroutine[Any, Any, T]) -> T:
    """Run a client call, turning failures into an error message and exit 1."""
    try:
        return asyncio.run(call)
    except TransportError as e:
        click.echo(style_error(f"Cannot reach dependency handler: {e}"), err=True)
        click.echo(style_dim("  Start it with: sds-deps serve"), err=True)
        sys.exit(1)
    except SdsDepsError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)
