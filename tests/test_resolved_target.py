import json
import subprocess
from pathlib import Path

import pytest

from ripdoc.cargo_path import CargoPath
from ripdoc.errors import (
    GenerateError,
    InvalidTargetError,
    ManifestNotFoundError,
    ModuleNotFoundError,
)
from ripdoc.resolved_target import ResolvedTarget, resolve_target
from ripdoc.target import NameEntrypoint, PathEntrypoint, Target


@pytest.fixture
def root(tmp_path):
    (tmp_path / "workspace/pkg1/src").mkdir(parents=True)
    (tmp_path / "workspace/pkg2/src").mkdir(parents=True)
    (tmp_path / "workspace/Cargo.toml").write_text(
        '[workspace]\nmembers = ["pkg1", "pkg2"]\n', encoding="utf-8"
    )
    (tmp_path / "workspace/pkg1/Cargo.toml").write_text(
        '[package]\nname = "pkg1"\nversion = "0.1.0"\n', encoding="utf-8"
    )
    (tmp_path / "workspace/pkg1/src/lib.rs").write_text("// pkg1 lib", encoding="utf-8")
    (tmp_path / "workspace/pkg1/src/module.rs").write_text(
        "// pkg1 module", encoding="utf-8"
    )
    (tmp_path / "workspace/pkg2/Cargo.toml").write_text(
        '[package]\nname = "pkg2"\nversion = "0.1.0"\n'
        '[dependencies]\nstandalone = { path = "../../standalone" }\n',
        encoding="utf-8",
    )
    (tmp_path / "workspace/pkg2/src/lib.rs").write_text("// pkg2 lib", encoding="utf-8")
    (tmp_path / "standalone/src").mkdir(parents=True)
    (tmp_path / "standalone/Cargo.toml").write_text(
        '[package]\nname = "standalone"\nversion = "0.1.0"\n', encoding="utf-8"
    )
    (tmp_path / "standalone/src/lib.rs").write_text(
        "// standalone lib", encoding="utf-8"
    )
    (tmp_path / "standalone/src/module.rs").write_text(
        "// standalone module", encoding="utf-8"
    )
    (tmp_path / "external").mkdir()
    return tmp_path


def _metadata(root):
    def package(name, directory):
        return {
            "name": name,
            "id": f"{name} 0.1.0",
            "manifest_path": str(root / directory / "Cargo.toml"),
        }

    return {
        "packages": [
            package("pkg1", "workspace/pkg1"),
            package("pkg2", "workspace/pkg2"),
            package("standalone", "standalone"),
        ],
        "workspace_members": ["pkg1 0.1.0", "pkg2 0.1.0"],
    }


@pytest.fixture
def fake_cargo(monkeypatch, root):
    metadata = _metadata(root)

    def fake_run(cmd, *args, **kwargs):
        if "metadata" in cmd:
            return subprocess.CompletedProcess(
                cmd, 0, stdout=json.dumps(metadata).encode("utf-8"), stderr=b""
            )
        return subprocess.CompletedProcess(cmd, 1, stdout=b"", stderr=b"unexpected")

    monkeypatch.setattr(subprocess, "run", fake_run)
    return metadata


def _same(a, b):
    return Path(a).resolve() == Path(b).resolve()


@pytest.mark.parametrize(
    ("entry", "extra", "expected_dir", "expected_filter"),
    [
        ("workspace/pkg1", [], "workspace/pkg1", ""),
        ("workspace/pkg1", ["module"], "workspace/pkg1", "module"),
        ("workspace", ["pkg2"], "workspace/pkg2", ""),
        ("workspace/pkg1/src/module.rs", [], "workspace/pkg1", "module"),
        ("standalone", ["module"], "standalone", "module"),
    ],
)
def test_from_target(root, fake_cargo, entry, extra, expected_dir, expected_filter):
    target = Target(PathEntrypoint(root / entry), list(extra))
    resolved = ResolvedTarget.from_target(target, True)
    assert _same(resolved.package_path.path, root / expected_dir)
    assert resolved.filter == expected_filter


def test_named_target_prefers_workspace_member(root, fake_cargo, monkeypatch):
    monkeypatch.chdir(root / "workspace")
    target = Target(NameEntrypoint("pkg1"), [])
    resolved = ResolvedTarget.from_target(target, True)
    assert _same(resolved.package_root, root / "workspace/pkg1")
    assert resolved.filter == ""


def test_named_target_prefers_dependency(root, fake_cargo, monkeypatch):
    monkeypatch.chdir(root / "workspace/pkg2")
    target = Target(NameEntrypoint("standalone"), [])
    resolved = ResolvedTarget.from_target(target, True)
    assert Path(resolved.package_root).resolve() == (root / "standalone").resolve()
    assert resolved.filter == ""


def test_registry_target_requires_version_offline(root, fake_cargo, monkeypatch):
    monkeypatch.chdir(root / "external")
    target = Target(NameEntrypoint("nonexistent-crate-for-test"), [])
    with pytest.raises(GenerateError) as info:
        ResolvedTarget.from_target(target, True)
    assert "requires an explicit version" in str(info.value)


def test_from_components_normalises_first_component(tmp_path):
    resolved = ResolvedTarget.from_components(CargoPath(tmp_path), ["my-crate", "sub-mod"])
    assert resolved.filter == "my_crate::sub-mod"


def test_from_components_empty(tmp_path):
    resolved = ResolvedTarget.from_components(CargoPath(tmp_path), [])
    assert resolved.filter == ""


def test_workspace_without_package_lists_members(root, fake_cargo):
    target = Target(PathEntrypoint(root / "workspace"), [])
    with pytest.raises(InvalidTargetError) as info:
        ResolvedTarget.from_target(target, True)
    assert str(info.value) == (
        "No package specified in workspace.\nAvailable packages:"
        "\n  - pkg1\n  - pkg2\n\nUsage: ripdoc <package-name>"
    )


def test_workspace_unknown_package(root, fake_cargo):
    target = Target(PathEntrypoint(root / "workspace"), ["nope"])
    with pytest.raises(ModuleNotFoundError) as info:
        ResolvedTarget.from_target(target, True)
    assert "Package 'nope' not found in workspace" in str(info.value)


def test_workspace_package_keeps_remaining_path(root, fake_cargo):
    target = Target(PathEntrypoint(root / "workspace"), ["pkg1", "module", "Item"])
    resolved = ResolvedTarget.from_target(target, True)
    assert _same(resolved.package_root, root / "workspace/pkg1")
    assert resolved.filter == "module::Item"


def test_path_neither_package_nor_workspace(root):
    target = Target(PathEntrypoint(root / "external"), [])
    with pytest.raises(InvalidTargetError, match="is neither a package nor a workspace"):
        ResolvedTarget.from_target(target, True)


def test_from_rust_file_appends_additional_path(root):
    resolved = ResolvedTarget.from_rust_file(
        root / "workspace/pkg1/src/module.rs", ["Thing"]
    )
    assert _same(resolved.package_root, root / "workspace/pkg1")
    assert resolved.filter == "module::Thing"


def test_from_rust_file_without_manifest(tmp_path):
    loose = tmp_path / "loose"
    loose.mkdir()
    (loose / "main.rs").write_text("fn main() {}", encoding="utf-8")
    with pytest.raises(ManifestNotFoundError):
        ResolvedTarget.from_rust_file(loose / "main.rs", [])


def test_from_rust_file_missing_file(tmp_path):
    with pytest.raises(GenerateError):
        ResolvedTarget.from_rust_file(tmp_path / "absent.rs", [])


def test_resolve_target_with_path(root):
    resolved = resolve_target(f"{(root / 'standalone').as_posix()}::module", True)
    assert _same(resolved.package_root, root / "standalone")
    assert resolved.filter == "module"


def test_resolve_target_named_keeps_module_filter(root, fake_cargo, monkeypatch):
    monkeypatch.chdir(root / "workspace")
    resolved = resolve_target("pkg1::module", True)
    assert _same(resolved.package_root, root / "workspace/pkg1")
    assert resolved.filter == "module"


def test_resolve_target_named_switches_to_dependency(root, fake_cargo, monkeypatch):
    monkeypatch.chdir(root / "workspace")
    resolved = resolve_target("pkg2::standalone", True)
    assert _same(resolved.package_root, root / "standalone")
    assert resolved.filter == "standalone"


def test_resolve_target_rejects_bad_spec():
    with pytest.raises(InvalidTargetError, match="empty string"):
        resolve_target("", True)