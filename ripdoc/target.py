"""Parsing of textual target specifications.

A specification has the form ``entrypoint[::path]``. The entrypoint is a file
or directory path, or a crate name optionally followed by ``@version``; the
path is a sequence of ``::``-separated module components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from semver import Version

from ripdoc.errors import InvalidTargetError


@dataclass(frozen=True)
class PathEntrypoint:
    """A path to a Rust file or a directory."""

    path: Path


@dataclass(frozen=True)
class NameEntrypoint:
    """A module or package name, optionally with a version."""

    name: str
    version: Version | None = None


Entrypoint = PathEntrypoint | NameEntrypoint


def _looks_like_path(entrypoint: str) -> bool:
    return "/" in entrypoint or "\\" in entrypoint or entrypoint in (".", "..")


@dataclass
class Target:
    """A parsed target specification."""

    entrypoint: Entrypoint
    path: list[str] = field(default_factory=list)

    @classmethod
    def parse(cls, spec: str) -> Target:
        """Parse a specification string, raising InvalidTargetError if malformed."""
        if not spec:
            raise InvalidTargetError("Invalid target specification: empty string")

        head, *components = spec.split("::")
        if not head:
            raise InvalidTargetError("Invalid name specification: empty name")

        for position, component in enumerate(components, start=1):
            if not component:
                raise InvalidTargetError(
                    "Invalid target specification: empty path component at position "
                    f"{position}"
                )

        entrypoint: Entrypoint
        if _looks_like_path(head):
            entrypoint = PathEntrypoint(Path(head))
        elif "@" in head:
            name_parts = head.split("@")
            if len(name_parts) != 2:
                raise InvalidTargetError(f"Invalid name specification: {head}")
            name, raw_version = name_parts
            try:
                version = Version.parse(raw_version)
            except (ValueError, TypeError) as exc:
                raise InvalidTargetError(f"Invalid version: {exc}") from exc
            entrypoint = NameEntrypoint(name, version)
        else:
            entrypoint = NameEntrypoint(head)

        return cls(entrypoint, list(components))