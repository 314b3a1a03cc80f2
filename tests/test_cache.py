import subprocess
from pathlib import Path
from unittest import mock

import pytest

from ripdoc.cache import (
    CacheConfig,
    CacheKey,
    get_toolchain_version,
    load_cached,
    save_cached,
)
from ripdoc.errors import GenerateError


def make_key(**overrides):
    params = dict(
        manifest_path=Path("/path/to/Cargo.toml"),
        package_info="test-crate-0.1.0",
        no_default_features=False,
        all_features=False,
        features=[],
        private_items=False,
        toolchain_version="rustc 1.70.0",
    )
    params.update(overrides)
    return CacheKey(**params)


def test_cache_key_hash_consistency():
    key1 = make_key(features=["feature1", "feature2"])
    key2 = make_key(features=["feature2", "feature1"])
    assert key1.digest() == key2.digest()


def test_cache_key_hash_different():
    key1 = make_key()
    key2 = make_key(no_default_features=True)
    assert key1.digest() != key2.digest()


def test_features_are_sorted():
    key = make_key(features=["zeta", "alpha", "mid"])
    assert key.features == ["alpha", "mid", "zeta"]


@pytest.mark.parametrize(
    "change",
    [
        {"package_info": "test-crate-0.2.0"},
        {"all_features": True},
        {"private_items": True},
        {"features": ["extra"]},
        {"toolchain_version": None},
        {"manifest_path": Path("/other/Cargo.toml")},
    ],
)
def test_each_parameter_changes_digest(change):
    assert make_key().digest() != make_key(**change).digest()


def test_cache_path_uses_digest(tmp_path):
    key = make_key()
    path = key.cache_path(tmp_path)
    assert path == tmp_path / f"{key.digest()}.bin"


def test_save_and_load_round_trip(tmp_path):
    config = CacheConfig().with_cache_dir(tmp_path / "cache")
    key = make_key()
    data = {"root": "0:0", "index": {"0:0": {"name": "demo"}}, "format_version": 56}
    save_cached(config, key, data)
    assert load_cached(config, key) == data
    assert not list((tmp_path / "cache").glob("*.tmp"))


def test_load_missing_entry_returns_none(tmp_path):
    config = CacheConfig().with_cache_dir(tmp_path)
    assert load_cached(config, make_key()) is None


def test_disabled_cache_neither_saves_nor_loads(tmp_path):
    config = CacheConfig.disabled().with_cache_dir(tmp_path / "cache")
    save_cached(config, make_key(), {"a": 1})
    assert not (tmp_path / "cache").exists()
    assert load_cached(config, make_key()) is None


def test_corrupted_entry_is_removed(tmp_path):
    config = CacheConfig().with_cache_dir(tmp_path)
    key = make_key()
    path = key.cache_path(tmp_path)
    path.write_bytes(b"not a cache entry")
    with pytest.raises(GenerateError, match="Cache deserialization failed"):
        load_cached(config, key)
    assert not path.exists()


def test_with_cache_dir_leaves_original_untouched(tmp_path):
    base = CacheConfig()
    custom = base.with_cache_dir(tmp_path)
    assert base.cache_dir is None
    assert custom.cache_dir == tmp_path
    assert custom.enabled is True


def test_resolve_cache_dir_prefers_explicit(tmp_path, monkeypatch):
    monkeypatch.setenv("RIPDOC_CACHE_DIR", str(tmp_path / "env"))
    config = CacheConfig(cache_dir=tmp_path / "explicit")
    assert config.resolve_cache_dir() == tmp_path / "explicit"


def test_resolve_cache_dir_uses_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("RIPDOC_CACHE_DIR", str(tmp_path / "env"))
    assert CacheConfig().resolve_cache_dir() == tmp_path / "env"


def test_resolve_cache_dir_default_ends_in_ripdoc(monkeypatch, tmp_path):
    monkeypatch.delenv("RIPDOC_CACHE_DIR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path))
    monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
    assert CacheConfig().resolve_cache_dir().name == "ripdoc"


def test_get_toolchain_version_strips_output():
    def fake_run(cmd, *args, **kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout=b"rustc 1.80.0-nightly\n", stderr=b"")

    with mock.patch("subprocess.run", side_effect=fake_run):
        assert get_toolchain_version() == "rustc 1.80.0-nightly"


def test_get_toolchain_version_none_when_missing():
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("no such program")):
        assert get_toolchain_version() is None