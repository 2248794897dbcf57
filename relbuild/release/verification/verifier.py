# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release verification: checks a published manifest the way a client would.

Checks performed:
  - the manifest parses and its signature verifies against a trusted key
  - every entry's package file exists next to the manifest (or in the given
    packages directory) with matching length, MD5 and SHA256

The file name of an entry is the last path segment of its first URL, which
is how package URLs are rendered from `${FILENAME}`.
"""

import logging
import posixpath
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from cryptography.hazmat.primitives.asymmetric import rsa

from relbuild.logging.logger import get_logger
from relbuild.release.errors import ManifestSignatureError
from relbuild.release.manifests.manifest import ManifestEntry, verify_signed_manifest
from relbuild.utils.hashing import compute_digests

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class VerificationReport:
    """Complete outcome of a manifest verification."""

    is_valid: bool
    manifest: str
    version: Optional[str] = None
    checks_passed: list[str] = field(default_factory=list)
    checks_failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def entry_filename(entry: ManifestEntry) -> Optional[str]:
    if not entry.remote_urls:
        return None
    name = posixpath.basename(unquote(urlparse(entry.remote_urls[0]).path))
    return name or None


def _check_entry(entry: ManifestEntry, packages_dir: Path) -> list[str]:
    filename = entry_filename(entry)
    if filename is None:
        return [f"{entry.package_type_id}: no download URL to derive a file name from"]

    path = packages_dir / filename
    if not path.is_file():
        return [f"{entry.package_type_id}: {filename} not found in {packages_dir}"]

    digests = compute_digests(path)
    errors: list[str] = []
    if digests.length != entry.length:
        errors.append(f"{filename}: length {digests.length} != {entry.length}")
    if digests.md5 != entry.md5:
        errors.append(f"{filename}: MD5 mismatch")
    if digests.sha256 != entry.sha256:
        errors.append(f"{filename}: SHA256 mismatch")
    return errors


def verify_release(
    manifest_path: Path,
    public_keys: Sequence[rsa.RSAPublicKey],
    packages_dir: Optional[Path] = None,
) -> VerificationReport:
    """
    Verify a signed manifest and the packages it lists.

    Args:
        manifest_path: The published manifest file.
        public_keys: Trusted keys; any one of them may have signed it.
        packages_dir: Where the packages are; defaults to the manifest's folder.
    """
    if not manifest_path.is_file():
        return VerificationReport(
            is_valid=False,
            manifest=str(manifest_path),
            checks_failed=["manifest_exists"],
            errors=[f"Manifest not found: {manifest_path}"],
        )

    passed: list[str] = ["manifest_exists"]
    failed: list[str] = []
    errors: list[str] = []

    try:
        document = verify_signed_manifest(manifest_path.read_bytes(), public_keys)
    except ManifestSignatureError as err:
        return VerificationReport(
            is_valid=False,
            manifest=str(manifest_path),
            checks_passed=passed,
            checks_failed=["signature"],
            errors=[str(err)],
        )
    passed.append("signature")

    directory = packages_dir if packages_dir is not None else manifest_path.parent
    for entry in document.packages:
        entry_errors = _check_entry(entry, directory)
        check = f"package:{entry.package_type_id}"
        if entry_errors:
            failed.append(check)
            errors.extend(entry_errors)
        else:
            passed.append(check)

    report = VerificationReport(
        is_valid=not failed,
        manifest=str(manifest_path),
        version=document.version,
        checks_passed=passed,
        checks_failed=failed,
        errors=errors,
    )
    _logger.info(
        "Manifest verification finished",
        extra={
            "manifest": str(manifest_path),
            "is_valid": report.is_valid,
            "passed": len(passed),
            "failed": len(failed),
        },
    )
    return report
