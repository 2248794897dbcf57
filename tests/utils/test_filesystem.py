# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for safe filesystem operations.

We verify:
  - atomic writes produce the right content and leave no temp files
  - atomic moves replace the target
  - build directories are reset or reused on request
"""

from pathlib import Path

from relbuild.utils.filesystem import (
    TEMP_PREFIX,
    atomic_move,
    atomic_write,
    atomic_write_bytes,
    reset_directory,
    safe_delete,
)


class TestAtomicWrite:
    def test_writes_text(self, tmp_path: Path) -> None:
        target = tmp_path / "Updates" / "build_version.txt"
        atomic_write(target, "42")
        assert target.read_text(encoding="utf-8") == "42"

    def test_overwrites_and_leaves_no_temp_files(self, tmp_path: Path) -> None:
        target = tmp_path / "manifest"
        target.write_bytes(b"old")
        atomic_write_bytes(target, b"new")
        assert target.read_bytes() == b"new"
        assert not list(tmp_path.glob(f"{TEMP_PREFIX}*"))


def test_atomic_move_replaces_target(tmp_path: Path) -> None:
    source = tmp_path / "autoupdate.manifest"
    target = tmp_path / "out" / "latest-v2.manifest"
    target.parent.mkdir()
    target.write_text("previous", encoding="utf-8")
    source.write_text("current", encoding="utf-8")

    atomic_move(source, target)

    assert target.read_text(encoding="utf-8") == "current"
    assert not source.exists()


class TestResetDirectory:
    def test_clears_previous_builds(self, tmp_path: Path) -> None:
        build = tmp_path / "build"
        (build / "packages").mkdir(parents=True)
        (build / "packages" / "old.zip").write_bytes(b"old")

        reset_directory(build, keep_existing=False)

        assert build.is_dir()
        assert list(build.iterdir()) == []

    def test_keeps_previous_builds(self, tmp_path: Path) -> None:
        build = tmp_path / "build"
        build.mkdir()
        (build / "old.zip").write_bytes(b"old")

        reset_directory(build, keep_existing=True)
        assert (build / "old.zip").exists()

    def test_creates_missing_directory(self, tmp_path: Path) -> None:
        reset_directory(tmp_path / "a" / "b", keep_existing=True)
        assert (tmp_path / "a" / "b").is_dir()


def test_safe_delete(tmp_path: Path) -> None:
    target = tmp_path / "autoupdate.manifest"
    target.write_bytes(b"x")
    assert safe_delete(target) is True
    assert safe_delete(target) is False
