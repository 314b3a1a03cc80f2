"""Run ``cargo rustdoc`` to produce rustdoc JSON for a package."""

from __future__ import annotations

import json
import subprocess
import tomllib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ripdoc.toolchain import to_import_name


@dataclass(frozen=True)
class PackageTarget:
    """The package target to document: the library, or a named binary."""

    bin_name: str | None = None

    @classmethod
    def lib(cls) -> PackageTarget:
        return cls()

    @classmethod
    def binary(cls, name: str) -> PackageTarget:
        return cls(name)

    @property
    def is_lib(self) -> bool:
        return self.bin_name is None

    def cargo_args(self) -> list[str]:
        """Arguments selecting this target on a cargo command line."""
        return ["--lib"] if self.bin_name is None else ["--bin", self.bin_name]


class BuildError(Exception):
    """Building rustdoc JSON failed before or outside rustdoc itself."""

    def __init__(self, message: str, stdout: bytes = b"", stderr: bytes = b"") -> None:
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class RustdocFailedError(BuildError):
    """rustdoc ran but exited with an error."""

    def __init__(self, stdout: bytes = b"", stderr: bytes = b"") -> None:
        super().__init__("Failed to build rustdoc JSON", stdout, stderr)


@dataclass(frozen=True)
class BuildOutput:
    """Location of the generated JSON and the captured cargo output."""

    json_path: Path
    stdout: bytes
    stderr: bytes


def _run(cmd: Sequence[str]) -> subprocess.CompletedProcess:
    try:
        return subprocess.run(list(cmd), capture_output=True, check=False)
    except OSError as exc:
        raise BuildError(f"failed to run {cmd[0]}: {exc}") from exc


def _toolchain_args(toolchain: str | None) -> list[str]:
    return [f"+{toolchain}"] if toolchain else []


def _json_stem(manifest_path: Path, package_target: PackageTarget) -> str:
    try:
        manifest = tomllib.loads(manifest_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise BuildError(f"failed to read manifest {manifest_path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise BuildError(f"failed to parse manifest {manifest_path}: {exc}") from exc

    package = manifest.get("package")
    if package is None:
        raise BuildError(
            f"{manifest_path} is a virtual manifest; select a package to document"
        )
    if package_target.bin_name is not None:
        name = package_target.bin_name
    else:
        name = manifest.get("lib", {}).get("name") or package.get("name")
    if not name:
        raise BuildError(f"{manifest_path} does not name its package")
    return to_import_name(name)


def _target_directory(manifest_path: Path, toolchain: str | None) -> Path:
    result = _run(
        [
            "cargo",
            *_toolchain_args(toolchain),
            "metadata",
            "--format-version",
            "1",
            "--no-deps",
            "--manifest-path",
            str(manifest_path),
        ]
    )
    if result.returncode != 0:
        text = result.stderr.decode("utf-8", errors="replace").strip()
        raise BuildError(f"cargo metadata failed: {text}", result.stdout, result.stderr)
    try:
        return Path(json.loads(result.stdout)["target_directory"])
    except (ValueError, KeyError, TypeError) as exc:
        raise BuildError(f"unexpected cargo metadata output: {exc}") from exc


def build_rustdoc_json(
    manifest_path: Path | str,
    package_target: PackageTarget,
    toolchain: str | None,
    document_private_items: bool,
    no_default_features: bool,
    all_features: bool,
    features: Iterable[str],
    quiet: bool,
) -> BuildOutput:
    """Build rustdoc JSON for a package and return where it was written."""
    manifest_path = Path(manifest_path)
    stem = _json_stem(manifest_path, package_target)
    target_dir = _target_directory(manifest_path, toolchain)

    cmd = [
        "cargo",
        *_toolchain_args(toolchain),
        "rustdoc",
        *package_target.cargo_args(),
        "--manifest-path",
        str(manifest_path),
    ]
    if quiet:
        cmd.append("--quiet")
    if no_default_features:
        cmd.append("--no-default-features")
    if all_features:
        cmd.append("--all-features")
    feature_list = list(features)
    if feature_list:
        cmd.extend(["--features", ",".join(feature_list)])
    cmd.extend(["--", "-Z", "unstable-options", "--output-format", "json"])
    if document_private_items:
        cmd.append("--document-private-items")

    result = _run(cmd)
    if result.returncode != 0:
        text = result.stderr.decode("utf-8", errors="replace")
        if "toolchain" in text and "is not installed" in text:
            raise BuildError(text.strip(), result.stdout, result.stderr)
        raise RustdocFailedError(result.stdout, result.stderr)

    json_path = target_dir / "doc" / f"{stem}.json"
    if not json_path.exists():
        raise BuildError(
            f"rustdoc JSON was expected at {json_path} but is missing",
            result.stdout,
            result.stderr,
        )
    return BuildOutput(json_path, result.stdout, result.stderr)