"""Helpers for inspecting the local Rust toolchain and naming crates."""

from __future__ import annotations

import subprocess


def is_rustup_available() -> bool:
    """Return whether ``rustup`` can be run successfully on this system."""
    try:
        result = subprocess.run(
            ["rustup", "--version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return False
    return result.returncode == 0


def to_import_name(package_name: str) -> str:
    """Convert a package name into its import form by replacing hyphens."""
    return package_name.replace("-", "_")