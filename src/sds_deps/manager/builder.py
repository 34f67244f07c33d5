"""Builder.

Turns a dependency's source directory into its binary with two external
steps: dependency normalization, then compilation to the binary path.
"""

from __future__ import annotations

__all__ = [
    "build",
    "render_command",
]

import logging
from collections.abc import Sequence

from sds_deps.config import ToolchainConfig
from sds_deps.dep import LintedDep
from sds_deps.exceptions import NotManageableError, ToolError

from .tools import run_tool


def render_command(template: Sequence[str], linted: LintedDep) -> list[str]:
    """Substitute {bin} and {src} in a toolchain command template."""
    return [part.format(bin=str(linted.bin_path), src=str(linted.src_path)) for part in template]


async def build(linted: LintedDep, toolchain: ToolchainConfig, logger: logging.Logger) -> None:
    """Build the dependency's binary from its source directory.

    Steps run sequentially in src_path; the first failure aborts. Any
    previous binary at bin_path is overwritten by the compile step.

    Args:
        linted: Linted dependency.
        toolchain: Prepare and build command templates.
        logger: Logger receiving both steps' output.

    Raises:
        NotManageableError: If the binary path is caller-owned.
        ToolError: If either step fails.
    """
    if not linted.manageable_bin:
        raise NotManageableError(f"binary of '{linted.url}' at {linted.bin_path} is not manageable")

    try:
        linted.bin_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ToolError(toolchain.build, None, reason=f"cannot prepare {linted.bin_path.parent}: {e}") from e

    logger.info(
        {
            "event": "build_started",
            "message": f"Building {linted.url}",
            "url": linted.url,
            "src_path": str(linted.src_path),
            "bin_path": str(linted.bin_path),
        }
    )

    if toolchain.prepare:
        await run_tool(render_command(toolchain.prepare, linted), linted.src_path, logger)
    await run_tool(render_command(toolchain.build, linted), linted.src_path, logger)
