"""External tool invocation.

Runs git and the build toolchain as child processes and forwards their
standard output and error, line by line, to a logger. There is no
separate capture channel: the logger is the only sink.
"""

from __future__ import annotations

__all__ = [
    "forward_stream",
    "run_tool",
]

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from sds_deps.exceptions import ToolError

# Lines longer than this are split by the reader
_STREAM_LIMIT_BYTES = 256 * 1024


async def forward_stream(
    stream: asyncio.StreamReader | None,
    logger: logging.Logger,
    level: int,
    source: str,
) -> None:
    """Forward every line of a child's stream to a logger.

    Args:
        stream: Child stdout or stderr (None is a no-op).
        logger: Destination logger.
        level: Level to log lines at.
        source: Label added to each record ("stdout"/"stderr").
    """
    if stream is None:
        return
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # Over-long line without newline; drain what is buffered
            line = await stream.read(_STREAM_LIMIT_BYTES)
        if not line:
            break
        text = line.decode("utf-8", errors="replace").rstrip()
        if text:
            logger.log(level, {"event": "tool_output", "message": text, "stream": source})


async def run_tool(
    command: Sequence[str],
    cwd: Path | None,
    logger: logging.Logger,
) -> None:
    """Run an external tool to completion.

    Blocks the calling task for the duration of the tool. Standard output
    is logged at INFO, standard error at WARNING.

    Args:
        command: Program and arguments.
        cwd: Working directory, None for the current one.
        logger: Logger receiving the tool's output.

    Raises:
        ToolError: If the tool cannot be started or exits non-zero.
    """
    logger.info(
        {
            "event": "tool_started",
            "message": f"Running: {' '.join(command)}",
            "details": {"cwd": str(cwd) if cwd else None},
        }
    )

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=_STREAM_LIMIT_BYTES,
        )
    except OSError as e:
        raise ToolError(command, None, reason=str(e)) from e

    await asyncio.gather(
        forward_stream(process.stdout, logger, logging.INFO, "stdout"),
        forward_stream(process.stderr, logger, logging.WARNING, "stderr"),
    )
    returncode = await process.wait()

    if returncode != 0:
        raise ToolError(command, returncode)
