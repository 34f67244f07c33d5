"""Dependency descriptors.

A Dep describes a dependency by its remote source locator, e.g.
"github.com/ahmetson/proxy-lib". The git URL used for fetching is derived
once at construction. Optional caller-supplied local source and binary
paths override where the manager looks for the artifacts.

A LintedDep is a Dep resolved against the manager's root directories:
concrete source/binary paths plus ownership ("manageable") flags. Only
DepManager.lint() produces LintedDep values, and lifecycle operations
only accept LintedDep values.

Default layout under the manager roots:
    <Src>/github.com.ahmetson.proxy-lib/go.mod
    <Bin>/github.com.ahmetson.proxy-lib      (".exe" suffix on Windows)
"""

from __future__ import annotations

__all__ = [
    "Dep",
    "LintedDep",
    "bin_file_path",
    "convert_to_git_url",
    "is_under",
    "url_to_file_name",
]

import ipaddress
import re
import sys
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from pydantic import ValidationError, ValidationInfo, field_validator, model_validator

from sds_deps.constants import DEFAULT_MANIFEST
from sds_deps.exceptions import InvalidDependencyError
from sds_deps.models import FrozenModel

# Characters allowed in a file name derived from a url
_FILE_NAME_DISALLOWED = re.compile(r"[^a-zA-Z0-9\-_.]+")

# Labels of [A-Za-z0-9_] followed by up to 62 of [A-Za-z0-9_-], single labels allowed
_DNS_NAME = re.compile(r"^([a-zA-Z0-9_][a-zA-Z0-9_-]{0,62})(\.[a-zA-Z0-9_][a-zA-Z0-9_-]{0,62})*[._]?$")
_DNS_NAME_MAX_LENGTH = 255


def url_to_file_name(url: str) -> str:
    """Convert a source locator to a file name.

    Slashes and backslashes become dots; every other character outside
    [a-zA-Z0-9-_.] is dropped.

    Example:
        >>> url_to_file_name("github.com/ahmetson/test-ext")
        'github.com.ahmetson.test-ext'
        >>> url_to_file_name("::github.com/ahmetson/  test-ext  ")
        'github.com.ahmetson.test-ext'
    """
    dotted = url.replace("/", ".").replace("\\", ".")
    return _FILE_NAME_DISALLOWED.sub("", dotted)


def bin_file_path(bin_dir: Path, name: str) -> Path:
    """Full binary path for a file name (".exe" appended on Windows)."""
    if sys.platform == "win32":
        return bin_dir / f"{name}.exe"
    return bin_dir / name


def is_under(path: Path, root: Path) -> bool:
    """True if path resolves to a location inside root."""
    try:
        Path(path).expanduser().resolve().relative_to(Path(root).expanduser().resolve())
        return True
    except ValueError:
        return False


def _is_dns_name(host: str) -> bool:
    if not host or len(host.replace(".", "")) > _DNS_NAME_MAX_LENGTH:
        return False
    try:
        ipaddress.ip_address(host)
        return False
    except ValueError:
        pass
    return _DNS_NAME.match(host) is not None


def convert_to_git_url(raw_url: str) -> str:
    """Convert a scheme-less source locator into an https git URL.

    Only remote locators are supported; absolute URLs and file paths are
    rejected.

    Args:
        raw_url: Locator such as "github.com/ahmetson/test-manager".

    Returns:
        "https://<raw_url>.git"

    Raises:
        InvalidDependencyError: If the locator has a scheme, is a path,
            or its host is not a valid DNS name.
    """
    if not raw_url or not raw_url.strip():
        raise InvalidDependencyError("url is empty")
    if raw_url.startswith("/") or urlsplit(raw_url).scheme:
        raise InvalidDependencyError(f"url '{raw_url}' should not be an absolute url or path")

    git_url = f"https://{raw_url}.git"
    try:
        host = urlsplit(git_url).hostname or ""
    except ValueError as e:
        raise InvalidDependencyError(f"invalid '{raw_url}' url: {e}") from e

    if not _is_dns_name(host):
        raise InvalidDependencyError(f"not a valid DNS name: '{host}'")

    return git_url


class Dep(FrozenModel):
    """Dependency descriptor.

    Attributes:
        url: Canonical source locator (no scheme), e.g. "example.com/org/repo".
        git_url: Fetch address derived from url ("https://<url>.git").
        branch: Branch to fetch. Empty means the remote default.
        local_src: Caller-supplied source directory, empty if unset.
        local_bin: Caller-supplied binary file, empty if unset.
    """

    url: str
    git_url: str = ""
    branch: str = ""
    local_src: str = ""
    local_bin: str = ""

    @model_validator(mode="before")
    @classmethod
    def _derive_git_url(cls, data: Any) -> Any:
        if isinstance(data, dict) and "url" in data:
            data = dict(data)
            data["git_url"] = convert_to_git_url(str(data["url"]))
        return data

    @field_validator("local_src")
    @classmethod
    def _check_local_src(cls, value: str, info: ValidationInfo) -> str:
        if not value:
            return value
        manifest = (info.context or {}).get("manifest", DEFAULT_MANIFEST)
        src = Path(value).expanduser()
        if not src.is_dir():
            raise InvalidDependencyError(f"local source '{value}' is not a directory")
        if not (src / manifest).is_file():
            raise InvalidDependencyError(f"local source '{value}' has no {manifest}")
        return str(src.resolve())

    @field_validator("local_bin")
    @classmethod
    def _check_local_bin(cls, value: str) -> str:
        if not value:
            return value
        binary = Path(value).expanduser()
        if not binary.is_file():
            raise InvalidDependencyError(f"local binary '{value}' does not exist")
        return str(binary.resolve())

    @classmethod
    def new(
        cls,
        url: str,
        local_src: str = "",
        local_bin: str = "",
        branch: str = "",
        manifest: str = DEFAULT_MANIFEST,
    ) -> Dep:
        """Create a dependency descriptor.

        Args:
            url: Remote source locator.
            local_src: Existing source directory containing the manifest file.
            local_bin: Existing binary file.
            branch: Branch to check out when fetching.
            manifest: Build manifest file name required in local_src.

        Returns:
            Validated Dep.

        Raises:
            InvalidDependencyError: If any part of the descriptor is invalid.
        """
        try:
            return cls.model_validate(
                {
                    "url": url,
                    "branch": branch or "",
                    "local_src": local_src or "",
                    "local_bin": local_bin or "",
                },
                context={"manifest": manifest},
            )
        except InvalidDependencyError:
            raise
        except ValidationError as e:
            errors = e.errors()
            reason = str(errors[0].get("ctx", {}).get("error") or errors[0]["msg"]) if errors else str(e)
            raise InvalidDependencyError(f"Dep('{url}'): {reason}") from e


class LintedDep(FrozenModel):
    """A dependency resolved against the manager's roots.

    Attributes:
        dep: The original descriptor.
        src_path: Directory holding the source code.
        bin_path: Binary file path.
        manageable_src: True if the manager may create or delete src_path.
        manageable_bin: True if the manager may build or delete bin_path.
    """

    dep: Dep
    src_path: Path
    bin_path: Path
    manageable_src: bool
    manageable_bin: bool

    @property
    def url(self) -> str:
        """Source locator of the dependency."""
        return self.dep.url
