"""Disk cache for generated rustdoc JSON.

Building rustdoc JSON is slow, so the decoded crate data is stored on disk
keyed by everything that influences the build.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import os
import subprocess
import sys
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ripdoc import toolchain
from ripdoc.errors import GenerateError

CACHE_DIR_ENV = "RIPDOC_CACHE_DIR"


def _platform_cache_dir() -> Path | None:
    """Return the per-user cache directory of this platform, if it can be found."""
    if sys.platform == "win32":
        local = os.environ.get("LOCALAPPDATA")
        return Path(local) if local else None

    home = os.environ.get("HOME")
    if sys.platform == "darwin":
        return Path(home) / "Library" / "Caches" if home else None

    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg and Path(xdg).is_absolute():
        return Path(xdg)
    return Path(home) / ".cache" if home else None


@dataclass(frozen=True)
class CacheConfig:
    """Whether caching is enabled and where cached documentation lives."""

    enabled: bool = True
    cache_dir: Path | None = None

    @classmethod
    def disabled(cls) -> CacheConfig:
        """A configuration with caching turned off."""
        return cls(enabled=False)

    def with_cache_dir(self, directory: Path | str) -> CacheConfig:
        """Return a copy of this configuration that stores entries in ``directory``."""
        return dataclasses.replace(self, cache_dir=Path(directory))

    def resolve_cache_dir(self) -> Path:
        """Return the cache directory, falling back to the environment and platform default."""
        if self.cache_dir is not None:
            return Path(self.cache_dir)

        from_env = os.environ.get(CACHE_DIR_ENV)
        if from_env is not None:
            return Path(from_env)

        base = _platform_cache_dir()
        if base is None:
            raise GenerateError("Could not determine cache directory")
        return base / "ripdoc"


@dataclass
class CacheKey:
    """The build parameters that identify one cached crate."""

    manifest_path: Path
    package_info: str
    no_default_features: bool
    all_features: bool
    features: list[str] = field(default_factory=list)
    private_items: bool = False
    toolchain_version: str | None = None

    def __post_init__(self) -> None:
        self.manifest_path = Path(self.manifest_path)
        # Feature order must not change the key.
        self.features = sorted(self.features)

    def digest(self) -> str:
        """Return a stable hexadecimal digest of this key."""
        material = json.dumps(
            [
                str(self.manifest_path),
                self.package_info,
                self.no_default_features,
                self.all_features,
                self.private_items,
                self.features,
                self.toolchain_version,
            ],
            separators=(",", ":"),
        )
        return hashlib.blake2b(material.encode("utf-8"), digest_size=8).hexdigest()

    def cache_path(self, cache_dir: Path | str) -> Path:
        """Return the file that holds the entry for this key inside ``cache_dir``."""
        return Path(cache_dir) / f"{self.digest()}.bin"


def _encode(crate_data: Any) -> bytes:
    return zlib.compress(json.dumps(crate_data, separators=(",", ":")).encode("utf-8"))


def _decode(data: bytes) -> Any:
    return json.loads(zlib.decompress(data).decode("utf-8"))


def load_cached(config: CacheConfig, key: CacheKey) -> Any | None:
    """Return cached crate data for ``key``, or None when there is no entry.

    A cache file that cannot be decoded is deleted and reported as an error.
    """
    if not config.enabled:
        return None

    cache_path = key.cache_path(config.resolve_cache_dir())
    if not cache_path.exists():
        return None

    try:
        data = cache_path.read_bytes()
    except OSError as exc:
        raise GenerateError(f"Failed to read cache file {cache_path}: {exc}") from exc

    try:
        return _decode(data)
    except (zlib.error, UnicodeDecodeError, ValueError) as exc:
        cache_path.unlink(missing_ok=True)
        raise GenerateError(
            f"Cache deserialization failed (removing stale cache): {exc}"
        ) from exc


def save_cached(config: CacheConfig, key: CacheKey, crate_data: Any) -> None:
    """Store crate data for ``key``, writing through a temporary file."""
    if not config.enabled:
        return

    cache_dir = config.resolve_cache_dir()
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise GenerateError(
            f"Failed to create cache directory {cache_dir}: {exc}"
        ) from exc

    cache_path = key.cache_path(cache_dir)
    try:
        data = _encode(crate_data)
    except (TypeError, ValueError) as exc:
        raise GenerateError(f"Failed to serialize cache data: {exc}") from exc

    temp_path = cache_path.with_suffix(".tmp")
    try:
        temp_path.write_bytes(data)
    except OSError as exc:
        raise GenerateError(f"Failed to write cache file {temp_path}: {exc}") from exc

    try:
        os.replace(temp_path, cache_path)
    except OSError as exc:
        raise GenerateError(
            f"Failed to finalize cache file {cache_path}: {exc}"
        ) from exc


def get_toolchain_version() -> str | None:
    """Return the version line of the Rust compiler used for builds, if available."""
    if toolchain.is_rustup_available():
        cmd = ["rustup", "run", "nightly", "rustc", "--version"]
    else:
        cmd = ["rustc", "--version"]
    try:
        result = subprocess.run(cmd, capture_output=True, check=False)
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.decode("utf-8", errors="replace").strip()