"""Dependency commands for sds-deps CLI.

Each command sends one request to the running handler:
- installed: Check whether a dependency's binary exists
- install: Fetch and build a dependency
- run: Start a dependency under an id
- running: Probe a dependency endpoint
- uninstall: Remove manager-owned artifacts
- close: Ask a dependency to shut down
"""

from __future__ import annotations

__all__ = [
    "close",
    "install",
    "installed",
    "run",
    "running",
    "uninstall",
]

import sys

import click
from pydantic import ValidationError

from sds_deps.dep import Dep
from sds_deps.exceptions import InvalidDependencyError
from sds_deps.models import ClientConfig

from ..styling import style_dim, style_error, style_success
from ._common import get_config, handler_client, run_remote


def _new_dep(ctx: click.Context, url: str, **kwargs: str) -> Dep:
    manifest = get_config(ctx).toolchain.manifest
    try:
        return Dep.new(url, manifest=manifest, **kwargs)
    except InvalidDependencyError as e:
        click.echo(style_error(str(e)), err=True)
        sys.exit(1)


def _endpoint(endpoint_id: str, port: int) -> ClientConfig:
    try:
        return ClientConfig(id=endpoint_id, port=port)
    except ValidationError as e:
        click.echo(style_error(f"Invalid endpoint '{endpoint_id}': {e.errors()[0]['msg']}"), err=True)
        sys.exit(1)


@click.command()
@click.argument("url")
@click.option("--local-bin", default="", help="Caller-owned binary to check instead of the managed one")
@click.pass_context
def installed(ctx: click.Context, url: str, local_bin: str) -> None:
    """Check whether a dependency is installed.

    Exits 0 if the binary exists, 1 otherwise.
    """
    dep = _new_dep(ctx, url, local_bin=local_bin)
    if run_remote(handler_client(ctx).installed(dep)):
        click.echo(style_success(f"{url} is installed"))
        return
    click.echo(style_dim(f"{url} is not installed"))
    sys.exit(1)


@click.command()
@click.argument("url")
@click.option("--branch", "-b", default="", help="Branch to fetch (default: remote default)")
@click.option("--local-src", default="", help="Existing source directory to build from")
@click.pass_context
def install(ctx: click.Context, url: str, branch: str, local_src: str) -> None:
    """Fetch (if needed) and build a dependency."""
    dep = _new_dep(ctx, url, branch=branch, local_src=local_src)
    click.echo(style_dim(f"Installing {url}..."))
    run_remote(handler_client(ctx).install(dep))
    click.echo(style_success(f"Installed {url}"))


@click.command()
@click.argument("url")
@click.option("--id", "instance_id", required=True, help="Instance id, unique among running instances")
@click.option("--parent-id", default="", help="Id of the endpoint the dependency connects back to")
@click.option("--parent-port", type=int, default=0, help="TCP port of the parent endpoint (default: Unix socket)")
@click.option("--local-bin", default="", help="Caller-owned binary to run")
@click.pass_context
def run(
    ctx: click.Context,
    url: str,
    instance_id: str,
    parent_id: str,
    parent_port: int,
    local_bin: str,
) -> None:
    """Start a dependency as INSTANCE_ID."""
    dep = _new_dep(ctx, url, local_bin=local_bin)
    parent = _endpoint(parent_id, parent_port) if parent_id else None
    run_remote(handler_client(ctx).run(dep, instance_id, parent=parent))
    click.echo(style_success(f"Started {url} as '{instance_id}'"))


@click.command()
@click.argument("endpoint_id")
@click.option("--port", "-p", type=int, default=0, help="TCP port of the dependency (default: Unix socket)")
@click.pass_context
def running(ctx: click.Context, endpoint_id: str, port: int) -> None:
    """Probe whether a dependency endpoint is serving.

    Exits 0 if it answered within the probe timeout, 1 otherwise.
    """
    endpoint = _endpoint(endpoint_id, port)
    if run_remote(handler_client(ctx).running(endpoint)):
        click.echo(style_success(f"'{endpoint_id}' is running ({endpoint.url()})"))
        return
    click.echo(style_dim(f"'{endpoint_id}' is not running ({endpoint.url()})"))
    sys.exit(1)


@click.command()
@click.argument("url")
@click.option("--local-src", default="", help="Caller-supplied source directory")
@click.option("--local-bin", default="", help="Caller-supplied binary")
@click.pass_context
def uninstall(ctx: click.Context, url: str, local_src: str, local_bin: str) -> None:
    """Delete a dependency's manager-owned source and binary."""
    dep = _new_dep(ctx, url, local_src=local_src, local_bin=local_bin)
    run_remote(handler_client(ctx).uninstall(dep))
    click.echo(style_success(f"Uninstalled {url}"))


@click.command()
@click.argument("endpoint_id")
@click.option("--port", "-p", type=int, default=0, help="TCP port of the dependency (default: Unix socket)")
@click.pass_context
def close(ctx: click.Context, endpoint_id: str, port: int) -> None:
    """Ask a dependency to shut down."""
    endpoint = _endpoint(endpoint_id, port)
    run_remote(handler_client(ctx).close(endpoint))
    click.echo(style_success(f"Closed '{endpoint_id}'"))
