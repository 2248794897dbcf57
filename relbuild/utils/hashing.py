# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities for release artifacts.

Installer bundles can run to hundreds of megabytes, so files are always read
in chunks and MD5 and SHA256 are updated from the same pass. The manifest
stores digests base64-encoded.
"""

import base64
import hashlib
from dataclasses import dataclass
from pathlib import Path

HASH_BUFFER_SIZE = 65536  # 64 KiB


@dataclass(frozen=True)
class FileDigests:
    """Length and base64 digests of a single file."""

    length: int
    md5: str
    sha256: str


def compute_digests(file_path: Path) -> FileDigests:
    """
    Stream a file once, computing its length, MD5 and SHA256.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    md5 = hashlib.md5(usedforsecurity=False)
    sha256 = hashlib.sha256()
    length = 0
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            md5.update(chunk)
            sha256.update(chunk)
            length += len(chunk)
    return FileDigests(
        length=length,
        md5=base64.b64encode(md5.digest()).decode("ascii"),
        sha256=base64.b64encode(sha256.digest()).decode("ascii"),
    )
