"""Main CLI entry point for sds-deps.

Defines the CLI group and registers all subcommands.

Commands:
    serve      - Run the dependency handler
    installed  - Check whether a dependency is installed
    install    - Fetch and build a dependency
    run        - Start a dependency under an id
    running    - Probe a dependency endpoint
    uninstall  - Remove a dependency's managed artifacts
    close      - Ask a dependency to shut down
    config     - Configuration management (show, path, init)

Subcommand help:
    sds-deps COMMAND -h         Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys
from pathlib import Path

import click

from sds_deps import __version__

from .commands.config import config
from .commands.deps import close, install, installed, run, running, uninstall
from .commands.serve import serve


class ReorderedGroup(click.Group):
    """Custom group that shows commands before custom help text."""

    def format_epilog(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Add extra help after commands section."""
        formatter.write(
            """
Quick Start:
  sds-deps serve &                                   Start the handler
  sds-deps install github.com/ahmetson/proxy-lib     Fetch and build
  sds-deps run github.com/ahmetson/proxy-lib --id proxy-1
  sds-deps running proxy-1                           Probe it
  sds-deps close proxy-1                             Stop it

Paths:
  Sources are cloned under SERVICE_DEPS_SRC (default ./_sds/src) and
  binaries are built under SERVICE_DEPS_BIN (default ./_sds/bin).
"""
        )


@click.group(
    cls=ReorderedGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: platform config dir)",
)
@click.pass_context
def cli(ctx: click.Context, version: bool, config_path: Path | None) -> None:
    """sds-deps: install, run and supervise service dependencies."""
    if version:
        click.echo(f"sds-deps {__version__}")
        sys.exit(0)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# Register commands
cli.add_command(close)
cli.add_command(config)
cli.add_command(install)
cli.add_command(installed)
cli.add_command(run)
cli.add_command(running)
cli.add_command(serve)
cli.add_command(uninstall)


def main() -> None:
    """CLI entry point."""
    cli()
