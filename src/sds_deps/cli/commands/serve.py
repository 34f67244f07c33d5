"""Serve command for sds-deps CLI."""

from __future__ import annotations

__all__ = ["serve"]

import asyncio
import logging
import sys

import click

from sds_deps.exceptions import ConfigurationError
from sds_deps.handler import run_handler
from sds_deps.log_config import configure_logging

from ..styling import style_error, style_label
from ._common import get_config


@click.command()
@click.option("--port", "-p", type=int, default=None, help="Listen on TCP port instead of the configured endpoint")
@click.option("--debug", is_flag=True, help="Log debug messages to stderr")
@click.pass_context
def serve(ctx: click.Context, port: int | None, debug: bool) -> None:
    """Run the dependency handler in the foreground.

    Serves until Ctrl+C, SIGTERM, or a 'close' request. Dependencies
    started through the handler are terminated on exit.
    """
    config = get_config(ctx)
    if port is not None:
        config = config.model_copy(update={"handler": config.handler.model_copy(update={"port": port})})

    configure_logging(config, logging.DEBUG if debug else logging.INFO)

    click.echo(style_label("Source root") + f" {config.src_path}")
    click.echo(style_label("Binary root") + f" {config.bin_path}")
    click.echo(style_label("Endpoint") + f" {config.handler.url()}")
    click.echo()
    click.echo("Press Ctrl+C to stop")

    try:
        asyncio.run(run_handler(config))
    except ConfigurationError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(style_error(f"Cannot listen on {config.handler.url()}: {e}"), err=True)
        sys.exit(1)
    click.echo("Handler stopped.")
