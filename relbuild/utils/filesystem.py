# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Safe filesystem operations.

Manifests are written to a temp file in the target directory and renamed into
place. Rename on the same filesystem is atomic, so a crash leaves either the
old manifest or the new one, never a truncated file that an update client
would download and reject.
"""

import os
import shutil
import tempfile
from pathlib import Path

TEMP_PREFIX = ".relbuild_tmp_"


def atomic_write_bytes(target_path: Path, data: bytes) -> None:
    """
    Write binary data to a file atomically.

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # delete=False because the file must survive closing so we can rename it.
    temp_fd = tempfile.NamedTemporaryFile(
        mode="wb",
        dir=str(target_path.parent),
        prefix=TEMP_PREFIX,
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        temp_fd.write(data)
        temp_fd.flush()
        temp_fd.close()
        os.replace(temp_path, target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write(target_path: Path, content: str, encoding: str = "utf-8") -> None:
    atomic_write_bytes(target_path, content.encode(encoding))


def atomic_move(source: Path, target: Path) -> None:
    """Rename `source` over `target`, replacing it if present."""
    target.parent.mkdir(parents=True, exist_ok=True)
    os.replace(source, target)


def reset_directory(path: Path, keep_existing: bool) -> None:
    """
    Prepare a build directory.

    With keep_existing=False the directory is deleted and recreated; with
    True an existing directory (and its previous builds) is reused.
    """
    if path.exists() and not keep_existing:
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def safe_delete(file_path: Path) -> bool:
    """Delete a file if it exists. Returns whether anything was deleted."""
    if file_path.exists():
        file_path.unlink()
        return True
    return False
