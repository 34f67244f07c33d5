"""Config command group for sds-deps CLI."""

from __future__ import annotations

__all__ = ["config"]

import json
import sys
from pathlib import Path

import click

from sds_deps.config import DepManagerConfig, get_config_path, get_system_log_path, save_config

from ..styling import style_error, style_label, style_success, style_warning
from ._common import get_config


def _config_path(ctx: click.Context) -> Path:
    return (ctx.obj or {}).get("config_path") or get_config_path()


@click.group()
def config() -> None:
    """Configuration management commands.

    \b
    Environment overrides:
      SERVICE_DEPS_SRC   Source root
      SERVICE_DEPS_BIN   Binary root
    """
    pass


@config.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, as_json: bool) -> None:
    """Show the effective configuration (file + environment)."""
    cfg = get_config(ctx)
    if as_json:
        click.echo(json.dumps(cfg.model_dump(mode="json"), indent=2))
        return

    click.echo(style_label("Config file") + f" {_config_path(ctx)}")
    click.echo(style_label("Source root") + f" {cfg.src_path}")
    click.echo(style_label("Binary root") + f" {cfg.bin_path}")
    click.echo(style_label("Handler") + f" {cfg.handler.url()}")
    click.echo(style_label("Probe timeout") + f" {cfg.probe_timeout_seconds}s")
    click.echo(style_label("System log") + f" {get_system_log_path(cfg)}")
    click.echo(style_label("Build") + f" {' '.join(cfg.toolchain.prepare)} && {' '.join(cfg.toolchain.build)}")


@config.command("path")
@click.pass_context
def path(ctx: click.Context) -> None:
    """Show the config file path."""
    click.echo(str(_config_path(ctx)))


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(ctx: click.Context, force: bool) -> None:
    """Write a config file with default values."""
    target = _config_path(ctx)
    if target.exists() and not force:
        click.echo(style_warning(f"{target} already exists (use --force to overwrite)"))
        sys.exit(1)
    try:
        written = save_config(DepManagerConfig(), target)
    except OSError as e:
        click.echo(style_error(f"Cannot write {target}: {e}"), err=True)
        sys.exit(1)
    click.echo(style_success(f"Configuration written to {written}"))
