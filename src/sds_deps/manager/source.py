"""Source fetcher.

Clones a dependency's remote repository into its resolved source path.
Only manager-owned (manageable) source paths are ever written to.
"""

from __future__ import annotations

__all__ = [
    "clone_command",
    "fetch_src",
    "src_exist",
]

import logging

from sds_deps.dep import LintedDep
from sds_deps.exceptions import NotManageableError, ToolError

from .tools import run_tool


def src_exist(linted: LintedDep) -> bool:
    """True if the dependency's source directory exists."""
    return linted.src_path.is_dir()


def clone_command(linted: LintedDep, git: str) -> list[str]:
    """Build the git clone command line for a dependency.

    A branch, when set, is checked out at clone time.
    """
    command = [git, "clone"]
    if linted.dep.branch:
        command.extend(["--branch", linted.dep.branch, "--single-branch"])
    command.extend([linted.dep.git_url, str(linted.src_path)])
    return command


async def fetch_src(linted: LintedDep, logger: logging.Logger, git: str = "git") -> None:
    """Clone the dependency's source code into its source path.

    The caller is responsible for only fetching when the source is absent;
    git itself rejects a non-empty destination.

    Args:
        linted: Linted dependency.
        logger: Logger receiving git's output.
        git: Git executable.

    Raises:
        NotManageableError: If the source path is caller-owned.
        ToolError: If cloning fails (network, missing remote, conflicts).
    """
    if not linted.manageable_src:
        raise NotManageableError(f"source of '{linted.url}' at {linted.src_path} is not manageable")

    try:
        linted.src_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ToolError([git, "clone"], None, reason=f"cannot prepare {linted.src_path.parent}: {e}") from e

    logger.info(
        {
            "event": "fetch_started",
            "message": f"Fetching {linted.dep.git_url}",
            "url": linted.url,
            "src_path": str(linted.src_path),
            "details": {"branch": linted.dep.branch or None},
        }
    )
    await run_tool(clone_command(linted, git), None, logger)
