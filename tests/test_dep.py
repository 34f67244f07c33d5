"""Tests for dependency descriptors.

Tests file name derivation, git URL conversion and Dep validation.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest
from pydantic import ValidationError

from sds_deps.dep import Dep, bin_file_path, convert_to_git_url, is_under, url_to_file_name
from sds_deps.exceptions import InvalidDependencyError


class TestUrlToFileName:
    """Tests for url_to_file_name()."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("github.com/ahmetson/test-ext", "github.com.ahmetson.test-ext"),
            ("::github.com/ahmetson/  test-ext  ", "github.com.ahmetson.test-ext"),
            ("example.com\\org\\repo", "example.com.org.repo"),
            ("x/y", "x.y"),
            ("host/with_under/score", "host.with_under.score"),
        ],
    )
    def test_converts_url(self, url: str, expected: str) -> None:
        """Slashes become dots and disallowed characters are dropped."""
        assert url_to_file_name(url) == expected

    def test_is_deterministic(self) -> None:
        """Same url always maps to the same name."""
        assert url_to_file_name("example.com/org/repo") == url_to_file_name("example.com/org/repo")


class TestBinFilePath:
    """Tests for bin_file_path()."""

    def test_appends_exe_only_on_windows(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Windows binaries get an .exe suffix."""
        root = Path("/bin-root")

        monkeypatch.setattr(sys, "platform", "linux")
        assert bin_file_path(root, "a.b") == root / "a.b"

        monkeypatch.setattr(sys, "platform", "win32")
        assert bin_file_path(root, "a.b") == root / "a.b.exe"


class TestIsUnder:
    """Tests for is_under()."""

    def test_child_is_under_root(self, tmp_path: Path) -> None:
        assert is_under(tmp_path / "src" / "repo", tmp_path / "src") is True

    def test_sibling_is_not_under_root(self, tmp_path: Path) -> None:
        assert is_under(tmp_path / "elsewhere" / "repo", tmp_path / "src") is False

    def test_dot_dot_escape_is_not_under_root(self, tmp_path: Path) -> None:
        """Paths are resolved before comparison."""
        assert is_under(tmp_path / "src" / ".." / "other", tmp_path / "src") is False


class TestConvertToGitUrl:
    """Tests for convert_to_git_url()."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("github.com/ahmetson/test-manager", "https://github.com/ahmetson/test-manager.git"),
            ("example.com/org/repo", "https://example.com/org/repo.git"),
            ("x/y", "https://x/y.git"),
        ],
    )
    def test_valid_urls(self, url: str, expected: str) -> None:
        """Scheme-less locators become https git URLs."""
        assert convert_to_git_url(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "   ",
            "https://github.com/ahmetson/test-manager",
            "file:///tmp/repo",
            "/home/me/repo",
            "127.0.0.1/org/repo",
            "bad host/org/repo",
        ],
    )
    def test_invalid_urls(self, url: str) -> None:
        """Absolute URLs, paths, IPs and non-DNS hosts are rejected."""
        with pytest.raises(InvalidDependencyError):
            convert_to_git_url(url)


class TestDepNew:
    """Tests for Dep.new() validation."""

    def test_derives_git_url(self) -> None:
        dep = Dep.new("github.com/ahmetson/proxy-lib")

        assert dep.url == "github.com/ahmetson/proxy-lib"
        assert dep.git_url == "https://github.com/ahmetson/proxy-lib.git"
        assert dep.branch == ""
        assert dep.local_src == ""
        assert dep.local_bin == ""

    def test_invalid_url_raises_value_error(self) -> None:
        """InvalidDependencyError is also a ValueError."""
        with pytest.raises(ValueError, match="absolute url or path"):
            Dep.new("https://github.com/ahmetson/proxy-lib")

    def test_is_immutable(self) -> None:
        dep = Dep.new("example.com/org/repo")

        with pytest.raises(ValidationError):
            dep.url = "example.com/other"  # type: ignore[misc]

    def test_accepts_local_src_with_manifest(
        self, tmp_path: Path, make_source: Callable[..., Path]
    ) -> None:
        src = make_source(tmp_path, "repo")

        dep = Dep.new("example.com/org/repo", local_src=str(src))

        assert Path(dep.local_src) == src.resolve()

    def test_rejects_local_src_without_manifest(self, tmp_path: Path) -> None:
        (tmp_path / "repo").mkdir()

        with pytest.raises(InvalidDependencyError, match="go.mod"):
            Dep.new("example.com/org/repo", local_src=str(tmp_path / "repo"))

    def test_rejects_missing_local_src(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDependencyError, match="not a directory"):
            Dep.new("example.com/org/repo", local_src=str(tmp_path / "missing"))

    def test_manifest_is_configurable(self, tmp_path: Path, make_source: Callable[..., Path]) -> None:
        """A different build manifest can be required."""
        src = make_source(tmp_path, "repo", manifest="Cargo.toml")

        with pytest.raises(InvalidDependencyError):
            Dep.new("example.com/org/repo", local_src=str(src))
        dep = Dep.new("example.com/org/repo", local_src=str(src), manifest="Cargo.toml")
        assert dep.local_src

    def test_accepts_existing_local_bin(self, tmp_path: Path) -> None:
        binary = tmp_path / "custom-bin"
        binary.write_text("")

        dep = Dep.new("example.com/org/repo", local_bin=str(binary))

        assert Path(dep.local_bin) == binary.resolve()

    def test_rejects_missing_local_bin(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDependencyError, match="does not exist"):
            Dep.new("example.com/org/repo", local_bin=str(tmp_path / "nope"))

    def test_rejects_directory_as_local_bin(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDependencyError):
            Dep.new("example.com/org/repo", local_bin=str(tmp_path))
