# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""Tests for streamed file digests."""

import base64
import hashlib
from pathlib import Path

import pytest

from relbuild.utils.hashing import HASH_BUFFER_SIZE, compute_digests


def _b64(digest: bytes) -> str:
    return base64.b64encode(digest).decode("ascii")


def test_digests_match_hashlib(tmp_path: Path) -> None:
    content = b"release package"
    path = tmp_path / "pkg.zip"
    path.write_bytes(content)

    digests = compute_digests(path)

    assert digests.length == len(content)
    assert digests.md5 == _b64(hashlib.md5(content).digest())
    assert digests.sha256 == _b64(hashlib.sha256(content).digest())


def test_multi_chunk_file(tmp_path: Path) -> None:
    content = bytes(range(256)) * (HASH_BUFFER_SIZE // 256 * 3 + 1)
    path = tmp_path / "big.bin"
    path.write_bytes(content)

    digests = compute_digests(path)
    assert digests.length == len(content)
    assert digests.sha256 == _b64(hashlib.sha256(content).digest())


def test_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty"
    path.write_bytes(b"")
    digests = compute_digests(path)
    assert digests.length == 0
    assert digests.md5 == "1B2M2Y8AsgTpgAmY7PhCfg=="


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        compute_digests(tmp_path / "nope")
