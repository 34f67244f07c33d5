"""CLI output styling utilities.

- Cyan bold for labels
- Green for success (with checkmark)
- Red for errors (with cross)
- Yellow for warnings
- Dim for neutral state
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_error",
    "style_label",
    "style_success",
    "style_warning",
]

import click


def style_label(label: str) -> str:
    """Style a label, adding a colon.

    Example:
        >>> click.echo(style_label("Binary") + f" {bin_path}")
        Binary: /home/me/_sds/bin/github.com.org.repo
    """
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    """Style a success message with a checkmark."""
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    """Style an error message with a cross mark.

    Example:
        >>> click.echo(style_error("install-dep: no source and not manageable"), err=True)
        ✗ install-dep: no source and not manageable
    """
    return click.style(f"✗ {message}", fg="red")


def style_warning(message: str) -> str:
    """Style a warning message."""
    return click.style(f"Warning: {message}", fg="yellow", bold=True)


def style_dim(message: str) -> str:
    """Style a neutral message as dim."""
    return click.style(message, dim=True)
