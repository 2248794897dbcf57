# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Signed update manifest.

The manifest is what the auto-update client downloads to learn about a
release: version, channel, change notes and, per package, the format id,
byte length, MD5 and SHA256 (base64) and the download URLs.

On disk:

    {
      "manifest": { ...document... },
      "key": "<RSAKeyValue>...public half of the signing key...</RSAKeyValue>",
      "signature": "<base64 RSA PKCS#1 v1.5 / SHA-256 signature>"
    }

The signature covers the canonical JSON of the whole document (sorted keys,
compact separators). There are no per-entry signatures: changing a single
byte in any entry invalidates the file.
"""

import asyncio
import base64
import binascii
import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from relbuild.logging.logger import get_logger
from relbuild.release.errors import ManifestSignatureError
from relbuild.release.keys.keyfile import public_key_from_xml
from relbuild.release.keys.keystore import SigningKey
from relbuild.release.manifests.templates import UrlTemplate, render_all
from relbuild.release.targets.catalog import BuiltPackage
from relbuild.release.versioning.descriptor import ReleaseDescriptor
from relbuild.utils.filesystem import atomic_write_bytes
from relbuild.utils.hashing import compute_digests

_logger: logging.Logger = get_logger(__name__)

# Name the pipeline writes first, and the name clients download.
BUILD_MANIFEST_NAME = "autoupdate.manifest"
PUBLISHED_MANIFEST_NAME = "latest-v2.manifest"


@dataclass(frozen=True)
class ManifestEntry:
    package_type_id: str
    remote_urls: tuple[str, ...]
    length: int
    md5: str
    sha256: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "package_type_id": self.package_type_id,
            "remote_urls": list(self.remote_urls),
            "length": self.length,
            "md5": self.md5,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ManifestEntry":
        return cls(
            package_type_id=str(data["package_type_id"]),
            remote_urls=tuple(str(u) for u in data["remote_urls"]),
            length=int(data["length"]),
            md5=str(data["md5"]),
            sha256=str(data["sha256"]),
        )


@dataclass(frozen=True)
class ManifestDocument:
    version: str
    release_type: str
    release_time: str
    displayname: str
    change_info: str = ""
    generic_update_page_url: str = ""
    update_from_v1_url: Optional[str] = None
    packages: tuple[ManifestEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "release_type": self.release_type,
            "release_time": self.release_time,
            "displayname": self.displayname,
            "change_info": self.change_info,
            "generic_update_page_url": self.generic_update_page_url,
            "update_from_v1_url": self.update_from_v1_url,
            "packages": [p.to_dict() for p in self.packages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ManifestDocument":
        return cls(
            version=str(data["version"]),
            release_type=str(data["release_type"]),
            release_time=str(data["release_time"]),
            displayname=str(data["displayname"]),
            change_info=str(data.get("change_info", "")),
            generic_update_page_url=str(data.get("generic_update_page_url", "")),
            update_from_v1_url=data.get("update_from_v1_url"),
            packages=tuple(ManifestEntry.from_dict(p) for p in data.get("packages", [])),
        )


def canonical_bytes(document: ManifestDocument) -> bytes:
    return json.dumps(document.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class SignedManifest:
    document: ManifestDocument
    key_xml: str
    signature: bytes

    def to_bytes(self) -> bytes:
        envelope = {
            "manifest": self.document.to_dict(),
            "key": self.key_xml,
            "signature": base64.b64encode(self.signature).decode("ascii"),
        }
        return (json.dumps(envelope, indent=2, sort_keys=True) + "\n").encode("utf-8")


def build_entry(
    package: BuiltPackage,
    release: ReleaseDescriptor,
    templates: Sequence[UrlTemplate],
) -> ManifestEntry:
    """Hash one artifact (streamed) and render its download URLs."""
    digests = compute_digests(package.created_file)
    return ManifestEntry(
        package_type_id=package.target.target_id,
        remote_urls=render_all(list(templates), release, package.filename),
        length=digests.length,
        md5=digests.md5,
        sha256=digests.sha256,
    )


async def build_entries(
    packages: Iterable[BuiltPackage],
    release: ReleaseDescriptor,
    templates: Sequence[UrlTemplate],
) -> tuple[ManifestEntry, ...]:
    """Hash every artifact in worker threads; all must succeed."""
    jobs = [asyncio.to_thread(build_entry, p, release, templates) for p in packages]
    return tuple(await asyncio.gather(*jobs))


def sign_document(document: ManifestDocument, key: SigningKey) -> SignedManifest:
    return SignedManifest(
        document=document,
        key_xml=key.public_xml(),
        signature=key.sign(canonical_bytes(document)),
    )


async def build_manifest(
    key: SigningKey,
    packages: Sequence[BuiltPackage],
    release: ReleaseDescriptor,
    templates: Sequence[UrlTemplate],
    change_info: str = "",
    generic_update_page_url: str = "",
    update_from_v1_url: Optional[str] = None,
) -> SignedManifest:
    """
    Build and sign the manifest for a set of built packages.

    Produces exactly one entry per package, in package order. An empty
    package list yields the stub manifest embedded in the compiled client.
    """
    entries = await build_entries(packages, release, templates)
    document = ManifestDocument(
        version=release.version_string,
        release_type=release.channel.value,
        release_time=release.timestamp.isoformat(),
        displayname=release.name,
        change_info=change_info,
        generic_update_page_url=generic_update_page_url,
        update_from_v1_url=update_from_v1_url,
        packages=entries,
    )
    signed = sign_document(document, key)
    _logger.info(
        "Manifest built",
        extra={"release": release.name, "entries": len(entries), "key": str(key.source)},
    )
    return signed


def write_signed_manifest(path: Path, manifest: SignedManifest) -> Path:
    atomic_write_bytes(path, manifest.to_bytes())
    _logger.info("Manifest written", extra={"path": str(path)})
    return path


def load_public_keys(path: Path) -> list[rsa.RSAPublicKey]:
    """Read a sign-keys file: one public key XML per non-blank line."""
    keys: list[rsa.RSAPublicKey] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.strip():
            keys.append(public_key_from_xml(line.strip()))
    return keys


def verify_signed_manifest(data: bytes, public_keys: Sequence[rsa.RSAPublicKey]) -> ManifestDocument:
    """
    Check a manifest against a list of trusted public keys.

    The embedded "key" field is informational only; trust comes from the
    caller's key list (primary and alternates).

    Raises:
        ManifestSignatureError: Unparseable file or no trusted key verifies it.
    """
    try:
        envelope = json.loads(data.decode("utf-8"))
        document = ManifestDocument.from_dict(envelope["manifest"])
        signature = base64.b64decode(envelope["signature"], validate=True)
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError, binascii.Error) as err:
        raise ManifestSignatureError(f"Manifest is not parseable: {err}") from err

    payload = canonical_bytes(document)
    for public_key in public_keys:
        try:
            public_key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256())
        except InvalidSignature:
            continue
        return document

    raise ManifestSignatureError("Manifest signature does not match any trusted key")
