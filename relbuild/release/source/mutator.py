# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Source tree stamping.

Before compiling, the release identity is written into the tree so the
binaries know what they are:

  - version tag, build channel and update URL list into fixed files
  - the public half of every signing key into the sign-keys file
  - changelog news prepended to the tracked changelog
  - `?v=<version>` cache-busting query strings in webroot .html/.js files
  - a signed stub manifest that the client embeds as its own provenance

This module only mutates. It reports what it touched (the RevertSet) and
leaves restoring to the pipeline's cleanup stage.
"""

import logging
import re
from pathlib import Path

from relbuild.config.schema import SourceLayout
from relbuild.logging.logger import get_logger
from relbuild.release.capabilities.resolver import RuntimeConfig
from relbuild.release.manifests.manifest import (
    PUBLISHED_MANIFEST_NAME,
    build_manifest,
    write_signed_manifest,
)
from relbuild.release.manifests.templates import render_all
from relbuild.release.versioning.descriptor import ReleaseDescriptor
from relbuild.utils.filesystem import safe_delete

_logger: logging.Logger = get_logger(__name__)

RevertSet = tuple[Path, ...]

_ASSET_SUFFIXES = (".html", ".js")
_VERSION_QUERY = re.compile(r"\?v=\d+\.\d+\.(?:\*|\d+(?:\.(?:\*|\d+))?)")


def fixed_revert_paths(base_dir: Path, layout: SourceLayout) -> tuple[Path, ...]:
    """The four well-known files that are always restored after a build."""
    return (
        base_dir / layout.version_tag_file,
        base_dir / layout.update_url_file,
        base_dir / layout.build_channel_file,
        base_dir / layout.sign_keys_file,
    )


def render_update_urls(runtime: RuntimeConfig) -> str:
    templates = runtime.settings.urls.updater_templates()
    return ";".join(render_all(templates, runtime.release, PUBLISHED_MANIFEST_NAME))


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def inject_version_into_assets(webroot: Path, release: ReleaseDescriptor) -> RevertSet:
    """
    Rewrite `?v=x.y.z[.w]` references under the webroot.

    Returns only files whose content actually changed.
    """
    if not webroot.is_dir():
        _logger.warning("Webroot not found, skipping asset stamping", extra={"webroot": str(webroot)})
        return ()

    replacement = f"?v={release.version_string}"
    changed: list[Path] = []
    for path in sorted(webroot.rglob("*")):
        if not path.is_file() or path.suffix.lower() not in _ASSET_SUFFIXES:
            continue
        # Assets keep their bytes and line endings; only the version query changes.
        with open(path, encoding="utf-8", errors="surrogateescape", newline="") as handle:
            original = handle.read()
        updated = _VERSION_QUERY.sub(replacement, original)
        if updated != original:
            with open(path, "w", encoding="utf-8", errors="surrogateescape", newline="") as handle:
                handle.write(updated)
            changed.append(path)

    _logger.info("Stamped asset versions", extra={"changed": len(changed), "webroot": str(webroot)})
    return tuple(changed)


def stamp(base_dir: Path, runtime: RuntimeConfig) -> RevertSet:
    """
    Write the release identity into the source tree.

    Returns:
        Webroot files that were modified. The four fixed files are not part of
        the set; see fixed_revert_paths.
    """
    layout = runtime.settings.source
    release = runtime.release

    _write(base_dir / layout.version_tag_file, release.version_string)
    _write(base_dir / layout.build_channel_file, release.channel.value)
    _write(base_dir / layout.update_url_file, render_update_urls(runtime))
    _write(
        base_dir / layout.sign_keys_file,
        "\n".join(key.public_xml() for key in runtime.keystore.keys) + "\n",
    )

    if runtime.changelog_news.strip():
        changelog = base_dir / layout.changelog_file
        previous = changelog.read_text(encoding="utf-8") if changelog.is_file() else ""
        _write(changelog, runtime.changelog_news.rstrip("\n") + "\n" + previous)
        _logger.info("Prepended changelog news", extra={"changelog": str(changelog)})

    _logger.info(
        "Stamped release identity",
        extra={"release": release.name, "base_dir": str(base_dir)},
    )
    return inject_version_into_assets(base_dir / layout.webroot_dir, release)


async def build_embedded_manifest(base_dir: Path, runtime: RuntimeConfig) -> Path:
    """Write the package-less signed manifest that the client binary embeds."""
    target = base_dir / runtime.settings.source.embedded_manifest_file
    safe_delete(target)

    urls = runtime.settings.urls
    signed = await build_manifest(
        runtime.keystore.primary,
        [],
        runtime.release,
        urls.package_templates(),
        generic_update_page_url=urls.generic_update_page_url,
        update_from_v1_url=urls.update_from_v1_url,
    )
    return write_signed_manifest(target, signed)
