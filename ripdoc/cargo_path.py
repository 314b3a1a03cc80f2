"""Locations of Cargo packages and workspaces, and reading their documentation."""

from __future__ import annotations

import json
import subprocess
import sys
import tempfile
import tomllib
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ripdoc import toolchain
from ripdoc.cache import CacheConfig, CacheKey, get_toolchain_version, load_cached, save_cached
from ripdoc.errors import GenerateError, ManifestParseError, RipdocError
from ripdoc.rustdoc_build import BuildError, PackageTarget, build_rustdoc_json
from ripdoc.rustdoc_error import map_rustdoc_build_error


def _alternate_name(name: str) -> str:
    """Swap underscores for hyphens, or hyphens for underscores."""
    if "_" in name:
        return name.replace("_", "-")
    return name.replace("-", "_")


def _mirror(stream: Any, data: bytes) -> None:
    """Best-effort copy of captured output to a standard stream."""
    if not data:
        return
    try:
        buffer = getattr(stream, "buffer", None)
        if buffer is not None:
            buffer.write(data)
            buffer.flush()
        else:
            stream.write(data.decode("utf-8", errors="replace"))
            stream.flush()
    except (OSError, ValueError):
        pass


@dataclass
class CargoPath:
    """A crate directory on disk, possibly backed by a temporary directory."""

    path: Path
    temp_dir: tempfile.TemporaryDirectory | None = field(
        default=None, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    @classmethod
    def from_temp_dir(cls, temp_dir: tempfile.TemporaryDirectory) -> CargoPath:
        """Wrap a temporary directory, keeping it alive as long as this object."""
        return cls(Path(temp_dir.name), temp_dir)

    def manifest_path(self) -> Path:
        """Return the absolute path of this source's ``Cargo.toml``."""
        manifest = self.path / "Cargo.toml"
        try:
            return manifest.absolute()
        except OSError as exc:
            raise GenerateError(
                f"Failed to resolve manifest path for '{manifest}': {exc}"
            ) from exc

    def has_manifest(self) -> bool:
        """Return whether this directory contains a ``Cargo.toml``."""
        return (self.path / "Cargo.toml").exists()

    def is_package(self) -> bool:
        """Return whether this directory holds a package manifest."""
        return self.has_manifest() and not self.is_workspace()

    def is_workspace(self) -> bool:
        """Return whether this directory holds a workspace manifest without a package."""
        if not self.has_manifest():
            return False
        manifest = self._load_manifest()
        return "workspace" in manifest and "package" not in manifest

    def _load_manifest(self) -> dict[str, Any]:
        manifest_path = self.manifest_path()
        try:
            text = manifest_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise GenerateError(str(exc)) from exc
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ManifestParseError(str(exc)) from exc

    def _package_target(self, manifest: dict[str, Any]) -> PackageTarget:
        package = manifest.get("package")
        package_name = package.get("name") if isinstance(package, dict) else None
        fallback_name = package_name or "main"

        if "lib" in manifest or (self.path / "src" / "lib.rs").exists():
            return PackageTarget.lib()
        bins = manifest.get("bin") or []
        if bins:
            return PackageTarget.binary(bins[0].get("name") or fallback_name)
        if (self.path / "src" / "main.rs").exists():
            return PackageTarget.binary(fallback_name)
        return PackageTarget.lib()

    def read_crate(
        self,
        no_default_features: bool,
        all_features: bool,
        features: Iterable[str],
        private_items: bool,
        silent: bool,
        cache_config: CacheConfig,
    ) -> Any:
        """Return the rustdoc JSON data for this crate, from the cache when possible."""
        features = list(features)
        manifest_path = self.manifest_path()
        manifest = self._load_manifest()

        package = manifest.get("package")
        if isinstance(package, dict):
            version = package.get("version")
            version_text = version if isinstance(version, str) else ""
            package_info = f"{package.get('name', '')}-{version_text}"
        else:
            package_info = "unknown-package"

        cache_key = CacheKey(
            manifest_path=manifest_path,
            package_info=package_info,
            no_default_features=no_default_features,
            all_features=all_features,
            features=features,
            private_items=private_items,
            toolchain_version=get_toolchain_version(),
        )

        try:
            cached = load_cached(cache_config, cache_key)
        except RipdocError:
            cached = None
        if cached is not None:
            return cached

        package_target = self._package_target(manifest)
        rustup = toolchain.is_rustup_available()

        try:
            output = build_rustdoc_json(
                manifest_path,
                package_target,
                "nightly" if rustup else None,
                private_items,
                no_default_features,
                all_features,
                features,
                silent,
            )
        except BuildError as err:
            if not silent:
                _mirror(sys.stdout, err.stdout)
                _mirror(sys.stderr, err.stderr)
            raise map_rustdoc_build_error(err, err.stderr, silent) from err

        if not silent:
            _mirror(sys.stdout, output.stdout)
            _mirror(sys.stderr, output.stderr)

        try:
            json_text = output.json_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise GenerateError(str(exc)) from exc

        try:
            crate_data = json.loads(json_text)
            if not isinstance(crate_data, dict):
                raise ValueError("rustdoc JSON is not an object")
        except ValueError as exc:
            update_msg = (
                "try running 'rustup update nightly'"
                if toolchain.is_rustup_available()
                else "try updating your nightly Rust toolchain"
            )
            raise GenerateError(
                "Failed to parse rustdoc JSON, which may indicate an outdated nightly "
                f"toolchain - {update_msg}:\nError: {exc}"
            ) from exc

        try:
            save_cached(cache_config, cache_key, crate_data)
        except RipdocError:
            pass

        return crate_data

    def _cargo_metadata(self) -> dict[str, Any]:
        manifest_path = self.manifest_path()
        cmd = [
            "cargo",
            "metadata",
            "--format-version",
            "1",
            "--manifest-path",
            str(manifest_path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, check=False)
        except OSError as exc:
            raise GenerateError(f"Failed to get cargo metadata: {exc}") from exc
        if result.returncode != 0:
            detail = result.stderr.decode("utf-8", errors="replace").strip()
            raise GenerateError(f"Failed to get cargo metadata: {detail}")
        try:
            metadata = json.loads(result.stdout)
        except ValueError as exc:
            raise GenerateError(f"Failed to get cargo metadata: {exc}") from exc
        if not isinstance(metadata, dict):
            raise GenerateError("Failed to get cargo metadata: unexpected output")
        return metadata

    @staticmethod
    def _workspace_packages(metadata: dict[str, Any]) -> list[dict[str, Any]]:
        members = set(metadata.get("workspace_members") or [])
        return [p for p in metadata.get("packages") or [] if p.get("id") in members]

    @staticmethod
    def _package_dir(package: dict[str, Any]) -> CargoPath:
        return CargoPath(Path(package["manifest_path"]).parent)

    def find_dependency(self, dependency: str, offline: bool) -> CargoPath | None:
        """Locate a workspace member or resolved dependency by name."""
        metadata = self._cargo_metadata()
        names = {dependency, _alternate_name(dependency)}

        for package in self._workspace_packages(metadata):
            if package.get("name") in names:
                return self._package_dir(package)
        for package in metadata.get("packages") or []:
            if package.get("name") in names:
                return self._package_dir(package)
        return None

    @classmethod
    def nearest_manifest(cls, start_dir: Path | str) -> CargoPath | None:
        """Walk upwards from ``start_dir`` to the closest directory with a ``Cargo.toml``."""
        start = Path(start_dir)
        for directory in (start, *start.parents):
            if (directory / "Cargo.toml").exists():
                return cls(directory)
        return None

    def find_workspace_package(self, module_name: str) -> CargoPath | None:
        """Return the directory of the workspace member with the given name."""
        metadata = self._cargo_metadata()
        names = {module_name, _alternate_name(module_name)}
        for package in self._workspace_packages(metadata):
            if package.get("name") in names:
                return self._package_dir(package)
        return None

    def list_workspace_packages(self) -> list[str]:
        """Return the sorted names of all workspace members."""
        metadata = self._cargo_metadata()
        return sorted(p["name"] for p in self._workspace_packages(metadata))