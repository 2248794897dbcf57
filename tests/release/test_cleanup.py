# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for end-of-run cleanup.
"""

import asyncio
from pathlib import Path

import pytest

from relbuild.config.schema import SourceLayout
from relbuild.release.cleanup.cleaner import publish_manifest, restore_list, revert_source_tree
from relbuild.release.tools.vcs import Git
from tests.fakes.runner import FakeCommandRunner


def test_publish_renames_manifest(tmp_path: Path):
    """The build manifest disappears and the published one has its bytes."""
    (tmp_path / "autoupdate.manifest").write_bytes(b"signed")

    published = publish_manifest(tmp_path)

    assert published == tmp_path / "latest-v2.manifest"
    assert published.read_bytes() == b"signed"
    assert not (tmp_path / "autoupdate.manifest").exists()


def test_publish_replaces_previous_manifest(tmp_path: Path):
    (tmp_path / "latest-v2.manifest").write_bytes(b"old")
    (tmp_path / "autoupdate.manifest").write_bytes(b"new")

    assert publish_manifest(tmp_path).read_bytes() == b"new"


def test_publish_without_manifest(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        publish_manifest(tmp_path)


def test_restore_list_fixed_paths_first(tmp_path: Path):
    layout = SourceLayout()
    changed = tmp_path / "Server/webroot/index.html"
    paths = restore_list(tmp_path, layout, [changed, tmp_path / layout.version_tag_file])

    assert paths[:4] == (
        tmp_path / layout.version_tag_file,
        tmp_path / layout.update_url_file,
        tmp_path / layout.build_channel_file,
        tmp_path / layout.sign_keys_file,
    )
    # duplicates collapse
    assert paths[4:] == (changed,)


def test_changelog_and_stub_manifest_are_never_restored(tmp_path: Path):
    layout = SourceLayout()
    paths = restore_list(tmp_path, layout, [])
    assert tmp_path / layout.changelog_file not in paths
    assert tmp_path / layout.embedded_manifest_file not in paths


def test_revert_checks_out_relative_paths(tmp_path: Path):
    runner = FakeCommandRunner()
    git = Git(runner, tmp_path)

    restored = asyncio.run(
        revert_source_tree(git, tmp_path, SourceLayout(), [tmp_path / "Server/webroot/js/app.js"])
    )

    assert len(restored) == 5
    (checkout,) = runner.git_calls()
    assert checkout[:2] == ("checkout", "--")
    assert checkout[-1] == "Server/webroot/js/app.js"
    assert all(not Path(p).is_absolute() for p in checkout[2:])
