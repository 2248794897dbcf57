# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
End-of-run cleanup.

Two things happen once every package is built and signed:
  - the manifest is published under the name clients download, with an
    atomic rename so a half-written manifest is never visible
  - the source tree is restored from git: the four fixed files plus
    whatever the stamping step reported as changed

Files outside that list are never touched. In particular the embedded stub
manifest and the changelog stay as they are, so the changelog news can be
committed with the release.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from relbuild.config.schema import SourceLayout
from relbuild.logging.logger import get_logger
from relbuild.release.manifests.manifest import BUILD_MANIFEST_NAME, PUBLISHED_MANIFEST_NAME
from relbuild.release.source.mutator import fixed_revert_paths
from relbuild.release.tools.vcs import Git
from relbuild.utils.filesystem import atomic_move

_logger: logging.Logger = get_logger(__name__)


def publish_manifest(packages_dir: Path) -> Path:
    """
    Rename `autoupdate.manifest` to `latest-v2.manifest` in one step.

    Raises:
        FileNotFoundError: The manifest was never written.
    """
    source = packages_dir / BUILD_MANIFEST_NAME
    target = packages_dir / PUBLISHED_MANIFEST_NAME
    if not source.is_file():
        raise FileNotFoundError(f"No manifest to publish at {source}")

    atomic_move(source, target)
    _logger.info("Manifest published", extra={"path": str(target)})
    return target


def restore_list(base_dir: Path, layout: SourceLayout, revert_set: Iterable[Path]) -> tuple[Path, ...]:
    """Fixed paths first, then the changed webroot files, without duplicates."""
    seen: dict[Path, None] = {}
    for path in (*fixed_revert_paths(base_dir, layout), *revert_set):
        seen.setdefault(path, None)
    return tuple(seen)


async def revert_source_tree(
    git: Git,
    base_dir: Path,
    layout: SourceLayout,
    revert_set: Iterable[Path],
) -> tuple[Path, ...]:
    paths = restore_list(base_dir, layout, revert_set)
    await git.checkout(paths)
    _logger.info("Source tree restored", extra={"files": len(paths)})
    return paths
