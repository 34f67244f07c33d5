"""Shared fixtures for sds-deps tests.

No Go toolchain, git or network is needed: builds run Python one-liners
through sys.executable, and binaries are Python scripts with a shebang.
"""

from __future__ import annotations

import os
import shutil
import socket
import stat
import sys
import tempfile
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from sds_deps import constants
from sds_deps.config import ToolchainConfig
from sds_deps.manager import DepManager

# Writes an executable that exits 0 after a short sleep to argv[1]
FAKE_BUILD_SCRIPT = """
import os, sys
path = sys.argv[1]
with open(path, "w") as f:
    f.write("#!" + sys.executable + "\\nimport time\\ntime.sleep(0.2)\\n")
os.chmod(path, 0o755)
"""


@pytest.fixture
def runtime_dir(monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point RUNTIME_DIR at a short /tmp directory (Unix socket limit ~104 chars)."""
    tmpdir = Path(tempfile.mkdtemp(prefix="sds_", dir="/tmp"))
    monkeypatch.setattr(constants, "RUNTIME_DIR", tmpdir)
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def free_port() -> int:
    """A TCP port nobody is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def fake_toolchain() -> ToolchainConfig:
    """Toolchain whose build step writes a runnable Python script."""
    return ToolchainConfig(
        prepare=[sys.executable, "-c", "pass"],
        build=[sys.executable, "-c", FAKE_BUILD_SCRIPT, "{bin}"],
    )


@pytest.fixture
def manager(tmp_path: Path, fake_toolchain: ToolchainConfig) -> DepManager:
    """Manager rooted in a temporary directory with the fake toolchain."""
    return DepManager(tmp_path / "src", tmp_path / "bin", probe_timeout=1.0, toolchain=fake_toolchain)


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Factory writing an executable Python script.

    The script body runs with ARGS_FILE bound to "<script>.args".
    """

    def _make(name: str, body: str) -> Path:
        path = tmp_path / "scripts" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            f"#!{sys.executable}\n"
            "import json, sys, time\n"
            "ARGS_FILE = __file__ + '.args'\n"
            f"{body}\n"
        )
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def make_source() -> Callable[..., Path]:
    """Factory creating a source directory that contains a manifest file."""

    def _make(root: Path, name: str, manifest: str = "go.mod") -> Path:
        src = root / name
        src.mkdir(parents=True, exist_ok=True)
        (src / manifest).write_text("module example.com/test\n")
        return src

    return _make


@pytest.fixture
def install_script() -> Callable[[Path, Path], Path]:
    """Factory copying an executable script to a target path (e.g. a managed bin_path)."""

    def _install(target: Path, script: Path) -> Path:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(script, target)
        os.chmod(target, 0o755)
        return target

    return _install
