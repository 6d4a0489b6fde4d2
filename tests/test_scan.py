"""Tests for file classification and directory scanning."""

import os
from pathlib import Path

import pytest

from macsigner.errors import ArtifactIOError, ArtifactNotFoundError
from macsigner.scan import MAX_SIGNABLE_SIZE, is_signable, scan_directory, validate_file


@pytest.mark.parametrize(
    "path",
    ["setup.exe", "SETUP.EXE", "lib/Core.Dll", "pkg.MSI", "libfoo.dylib", "Tool.App", "a.b.nupkg"],
)
def test_is_signable_ignores_extension_case(path: str) -> None:
    assert is_signable(path)


@pytest.mark.parametrize(
    "path",
    ["README", "notes.txt", "archive.zip", "exe", ".exe", "setup.exe.bak", "dir.exe/readme"],
)
def test_is_signable_rejects_other_paths(path: str) -> None:
    assert not is_signable(path)


def test_is_signable_does_not_touch_filesystem(temp_dir: Path) -> None:
    missing = temp_dir / "never" / "created.dll"
    assert is_signable(missing)
    assert not missing.parent.exists()


def test_scan_returns_only_signable_files_sorted(temp_dir: Path) -> None:
    for name in ["zeta.exe", "alpha.dll", "Beta.msi", "readme.txt", "data.json"]:
        (temp_dir / name).write_bytes(b"x" * 10)

    artifacts = scan_directory(temp_dir, recursive=False)

    # Ordinal order: uppercase sorts before lowercase.
    assert [a.name for a in artifacts] == ["Beta.msi", "alpha.dll", "zeta.exe"]
    assert all(a.size_bytes == 10 for a in artifacts)
    assert all(a.path.is_absolute() for a in artifacts)


def test_scan_recursive_flag(temp_dir: Path) -> None:
    (temp_dir / "top.exe").write_bytes(b"top")
    nested = temp_dir / "sub" / "deeper"
    nested.mkdir(parents=True)
    (nested / "inner.dll").write_bytes(b"inner")

    flat = scan_directory(temp_dir, recursive=False)
    deep = scan_directory(temp_dir, recursive=True)

    assert [a.name for a in flat] == ["top.exe"]
    assert [a.name for a in deep] == ["inner.dll", "top.exe"]


def test_scan_hidden_entries(temp_dir: Path) -> None:
    (temp_dir / "visible.exe").write_bytes(b"v")
    (temp_dir / ".hidden.exe").write_bytes(b"h")
    (temp_dir / ".hidden.txt").write_bytes(b"h")
    hidden_dir = temp_dir / ".cache"
    hidden_dir.mkdir()
    (hidden_dir / "cached.dll").write_bytes(b"c")

    without = scan_directory(temp_dir, show_hidden=False)
    with_hidden = scan_directory(temp_dir, show_hidden=True)

    assert [a.name for a in without] == ["visible.exe"]
    assert [a.name for a in with_hidden] == [".hidden.exe", "cached.dll", "visible.exe"]


def test_scan_missing_root_raises(temp_dir: Path) -> None:
    with pytest.raises(ArtifactNotFoundError):
        scan_directory(temp_dir / "missing")


def test_scan_single_file_root(temp_dir: Path) -> None:
    target = temp_dir / "only.exe"
    target.write_bytes(b"1234")
    other = temp_dir / "notes.txt"
    other.write_text("n")

    assert [a.name for a in scan_directory(target)] == ["only.exe"]
    assert scan_directory(other) == []


def test_scan_auto_select_flag(temp_dir: Path) -> None:
    (temp_dir / "a.exe").write_bytes(b"a")

    assert scan_directory(temp_dir, auto_select=True)[0].selected is True
    assert scan_directory(temp_dir, auto_select=False)[0].selected is False


def test_scan_skips_file_whose_stat_fails(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    good = temp_dir / "good.exe"
    bad = temp_dir / "bad.exe"
    good.write_bytes(b"good")
    bad.write_bytes(b"bad")

    original_stat = Path.stat

    def flaky_stat(self: Path, *args, **kwargs):
        if self.name == "bad.exe":
            raise PermissionError("denied")
        return original_stat(self, *args, **kwargs)

    monkeypatch.setattr(Path, "stat", flaky_stat)

    artifacts = scan_directory(temp_dir, recursive=False)

    assert [a.name for a in artifacts] == ["good.exe"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_scan_skips_symlinks(temp_dir: Path) -> None:
    real = temp_dir / "real.exe"
    real.write_bytes(b"real")
    (temp_dir / "link.exe").symlink_to(real)

    assert [a.name for a in scan_directory(temp_dir)] == ["real.exe"]


def test_validate_file(temp_dir: Path) -> None:
    target = temp_dir / "ok.exe"
    target.write_bytes(b"1234")

    validate_file(target)

    with pytest.raises(ArtifactNotFoundError):
        validate_file(temp_dir / "missing.exe")
    with pytest.raises(ArtifactIOError, match="too large"):
        validate_file(target, max_size=3)
    assert MAX_SIGNABLE_SIZE == 2 * 1024**3
