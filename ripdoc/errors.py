"""Error types raised while resolving targets or talking to Cargo and rustdoc."""

from __future__ import annotations


class RipdocError(Exception):
    """Base class for every error the package raises."""

    template = "{message}"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.template.format(message=self.message)


class GenerateError(RipdocError):
    """A general failure, described entirely by its message."""


class ManifestParseError(RipdocError):
    """A manifest file could not be parsed."""

    template = "failed to parse manifest: {message}"


class ManifestNotFoundError(RipdocError):
    """The requested target does not point into a Cargo package."""

    template = "failed to locate Cargo.toml"

    def __init__(self) -> None:
        super().__init__("")


class ModuleNotFoundError(RipdocError):  # noqa: A001 - mirrors the domain term
    """A module or crate was not found in the current context."""

    template = "module or crate not found: {message}"

    @property
    def name(self) -> str:
        return self.message


class InvalidTargetError(RipdocError):
    """A target specification was malformed or points at nothing usable."""