"""Resolve target specifications to a package directory and module filter."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from semver import Version

from ripdoc.cache import CacheConfig
from ripdoc.cargo_path import CargoPath
from ripdoc.errors import (
    GenerateError,
    InvalidTargetError,
    ManifestNotFoundError,
    ModuleNotFoundError,
)
from ripdoc.registry import fetch_registry_crate
from ripdoc.target import NameEntrypoint, PathEntrypoint, Target
from ripdoc.toolchain import to_import_name


@dataclass
class ResolvedTarget:
    """A package location together with the module path inside it.

    ``filter`` is the ``::``-joined module path below the package root, empty
    for the root itself.
    """

    package_path: CargoPath
    filter: str = ""

    @classmethod
    def from_components(
        cls, path: CargoPath, components: Sequence[str]
    ) -> ResolvedTarget:
        """Build a target whose first filter component is in import form."""
        parts = list(components)
        if parts:
            parts[0] = to_import_name(parts[0])
        return cls(path, "::".join(parts))

    @property
    def package_root(self) -> Path:
        """The crate root on disk backing this target."""
        return self.package_path.path

    def read_crate(
        self,
        no_default_features: bool,
        all_features: bool,
        features: Iterable[str],
        private_items: bool,
        silent: bool,
        cache_config: CacheConfig,
    ) -> Any:
        """Return the rustdoc JSON data for the package behind this target."""
        return self.package_path.read_crate(
            no_default_features,
            all_features,
            features,
            private_items,
            silent,
            cache_config,
        )

    @classmethod
    def from_target(cls, target: Target, offline: bool) -> ResolvedTarget:
        """Resolve a parsed target to a package location and filter path."""
        extra_path = list(target.path)
        entrypoint = target.entrypoint

        if isinstance(entrypoint, NameEntrypoint):
            return cls._resolve_named(
                entrypoint.name, entrypoint.version, extra_path, offline
            )

        path = Path(entrypoint.path)
        if path.is_file() and path.suffix == ".rs":
            return cls.from_rust_file(path, extra_path)

        cargo_path = CargoPath(path)
        if cargo_path.is_package():
            return cls.from_components(cargo_path, extra_path)
        if cargo_path.is_workspace():
            return cls._from_workspace(cargo_path, extra_path)
        raise InvalidTargetError(
            f"Path '{path}' is neither a package nor a workspace"
        )

    @classmethod
    def _from_workspace(
        cls, workspace: CargoPath, extra_path: list[str]
    ) -> ResolvedTarget:
        if not extra_path:
            lines = ["No package specified in workspace.", "Available packages:"]
            lines.extend(f"  - {name}" for name in workspace.list_workspace_packages())
            message = "\n".join(lines) + "\n\nUsage: ripdoc <package-name>"
            raise InvalidTargetError(message)

        package_name, *rest = extra_path
        package = workspace.find_workspace_package(package_name)
        if package is None:
            raise ModuleNotFoundError(
                f"Package '{package_name}' not found in workspace"
            )
        return cls.from_components(package, rest)

    @classmethod
    def from_rust_file(
        cls, file_path: Path | str, additional_path: Sequence[str]
    ) -> ResolvedTarget:
        """Resolve a module path starting from a Rust source file."""
        try:
            resolved = Path(file_path).resolve(strict=True)
        except OSError as exc:
            raise GenerateError(str(exc)) from exc

        package_dir = next(
            (
                directory
                for directory in (resolved.parent, *resolved.parent.parents)
                if (directory / "Cargo.toml").exists()
            ),
            None,
        )
        if package_dir is None:
            raise ManifestNotFoundError()

        try:
            relative = resolved.relative_to(package_dir)
        except ValueError as exc:
            raise InvalidTargetError("Failed to determine relative path") from exc

        components = list(relative.parts)
        if components and components[0] == "src":
            components.pop(0)
        if components:
            components.append(Path(components.pop()).stem)
        components.extend(additional_path)

        return cls.from_components(CargoPath(package_dir), components)

    @classmethod
    def _from_registry_crate(
        cls,
        name: str,
        version: Version | None,
        path: Sequence[str],
        offline: bool,
    ) -> ResolvedTarget:
        return cls.from_components(fetch_registry_crate(name, version, offline), path)

    @classmethod
    def _resolve_named(
        cls,
        name: str,
        version: Version | None,
        path: Sequence[str],
        offline: bool,
    ) -> ResolvedTarget:
        if version is not None:
            return cls._from_registry_crate(name, version, path, offline)

        root = CargoPath.nearest_manifest(Path.cwd())
        if root is not None:
            member = root.find_workspace_package(name)
            if member is not None:
                return cls.from_components(member, path)
            dependency = root.find_dependency(name, offline)
            if dependency is not None:
                return cls.from_components(dependency, path)

        return cls._from_registry_crate(name, None, path, offline)


def resolve_target(target_str: str, offline: bool) -> ResolvedTarget:
    """Parse a textual target specification and resolve it to a package location."""
    target = Target.parse(target_str)

    if isinstance(target.entrypoint, PathEntrypoint):
        return ResolvedTarget.from_target(target, offline)

    resolved = ResolvedTarget.from_target(target, offline)
    if not resolved.filter:
        return resolved

    first_component = resolved.filter.split("::")[0]
    dependency = resolved.package_path.find_dependency(first_component, offline)
    if dependency is not None:
        return ResolvedTarget.from_components(dependency, target.path)
    return resolved