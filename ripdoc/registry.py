"""Locate crates from the registry, downloading them through Cargo when needed."""

from __future__ import annotations

import json
import os
import subprocess
import tempfile
import urllib.error
import urllib.request
from pathlib import Path

from semver import Version

from ripdoc.cargo_path import CargoPath
from ripdoc.errors import GenerateError, ModuleNotFoundError

CRATES_IO_API = "https://crates.io/api/v1/crates"
USER_AGENT = "ripdoc (crate documentation outliner)"
REQUEST_TIMEOUT = 30.0


def fetch_registry_crate(
    name: str, version: Version | str | None, offline: bool
) -> CargoPath:
    """Return the source directory of ``name`` at ``version``, downloading it if needed.

    Without a version the newest stable release is looked up, which needs the
    network; offline use therefore requires an explicit version.
    """
    if version is not None:
        resolved_version = str(version)
    else:
        if offline:
            raise GenerateError(
                f"crate '{name}' requires an explicit version when running offline"
            )
        resolved_version = fetch_latest_version(name)

    cached = find_in_cargo_cache(name, resolved_version)
    if cached is not None:
        return CargoPath(cached)

    if offline:
        raise GenerateError(
            f"crate '{name}'@{resolved_version} is not cached locally for offline use. "
            "Run without --offline or use `cargo fetch` first."
        )

    fetch_with_cargo(name, resolved_version)

    cached = find_in_cargo_cache(name, resolved_version)
    if cached is None:
        raise GenerateError(
            f"Failed to locate '{name}'@{resolved_version} in cargo cache after download"
        )
    return CargoPath(cached)


def fetch_latest_version(name: str) -> str:
    """Ask the registry for the newest version of ``name``, preferring stable releases."""
    url = f"{CRATES_IO_API}/{name}"
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    try:
        response = urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT)
    except urllib.error.HTTPError as exc:
        if exc.code == 404:
            raise ModuleNotFoundError(name) from exc
        raise GenerateError(f"Failed to reach crates.io for '{name}': {exc}") from exc
    except OSError as exc:
        raise GenerateError(f"Failed to reach crates.io for '{name}': {exc}") from exc

    try:
        with response:
            body = response.read()
    except OSError as exc:
        raise GenerateError(
            f"Failed to read crates.io response for '{name}': {exc}"
        ) from exc

    try:
        value = json.loads(body)
    except ValueError as exc:
        raise GenerateError(
            f"Failed to parse crates.io metadata for '{name}': {exc}"
        ) from exc

    crate_info = value.get("crate") if isinstance(value, dict) else None
    if not isinstance(crate_info, dict):
        raise GenerateError(f"Malformed crates.io response for '{name}'")

    max_stable = crate_info.get("max_stable_version")
    max_version = crate_info.get("max_version")
    if not isinstance(max_version, str):
        raise GenerateError(f"Missing max_version for '{name}' on crates.io")

    if isinstance(max_stable, str) and max_stable:
        return max_stable
    return max_version


def find_in_cargo_cache(name: str, version: str) -> Path | None:
    """Return the unpacked source directory of a crate in Cargo's registry cache."""
    registry_src = get_cargo_home() / "registry" / "src"
    if not registry_src.exists():
        return None

    try:
        index_dirs = sorted(registry_src.iterdir())
    except OSError as exc:
        raise GenerateError(str(exc)) from exc

    for index_dir in index_dirs:
        if not index_dir.is_dir():
            continue
        crate_dir = index_dir / f"{name}-{version}"
        if (crate_dir / "Cargo.toml").exists():
            return crate_dir
    return None


def _fetch_manifest(name: str, version: str) -> str:
    return (
        "[package]\n"
        'name = "temp-fetch"\n'
        'version = "0.0.0"\n'
        'edition = "2021"\n'
        "\n"
        "[dependencies]\n"
        f'{name} = "={version}"\n'
    )


def fetch_with_cargo(name: str, version: str) -> None:
    """Download a crate into Cargo's cache through a throwaway manifest."""
    try:
        temp_dir = tempfile.TemporaryDirectory()
    except OSError as exc:
        raise GenerateError(f"Failed to create temp directory: {exc}") from exc

    with temp_dir as root_name:
        root = Path(root_name)
        manifest_path = root / "Cargo.toml"
        try:
            manifest_path.write_text(_fetch_manifest(name, version), encoding="utf-8")
        except OSError as exc:
            raise GenerateError(f"Failed to write temp Cargo.toml: {exc}") from exc

        src_dir = root / "src"
        try:
            src_dir.mkdir()
        except OSError as exc:
            raise GenerateError(f"Failed to create src directory: {exc}") from exc
        try:
            (src_dir / "lib.rs").write_text("", encoding="utf-8")
        except OSError as exc:
            raise GenerateError(f"Failed to write src/lib.rs: {exc}") from exc

        try:
            result = subprocess.run(
                ["cargo", "fetch", "--manifest-path", str(manifest_path)],
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise GenerateError(f"Failed to run cargo fetch: {exc}") from exc

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace")
            raise GenerateError(f"cargo fetch failed for '{name}'@{version}: {stderr}")


def get_cargo_home() -> Path:
    """Return Cargo's home directory from ``CARGO_HOME`` or ``HOME``."""
    cargo_home = os.environ.get("CARGO_HOME")
    if cargo_home is not None:
        return Path(cargo_home)
    home = os.environ.get("HOME")
    if home is not None:
        return Path(home) / ".cargo"
    raise GenerateError("Could not determine CARGO_HOME directory")