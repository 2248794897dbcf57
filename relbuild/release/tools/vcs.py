# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Git operations used by a release run.

All mutations take explicit path lists relative to the repository, so the
source tree can always be restored with a checkout of exactly those paths.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from relbuild.logging.logger import get_logger
from relbuild.release.tools.process import Command, CommandRunner

_logger: logging.Logger = get_logger(__name__)


class Git:
    def __init__(self, runner: CommandRunner, repo_dir: Path) -> None:
        self._runner = runner
        self._repo_dir = repo_dir

    @property
    def repo_dir(self) -> Path:
        return self._repo_dir

    def _relative(self, paths: Iterable[Path | str]) -> list[str]:
        relative: list[str] = []
        for path in paths:
            candidate = Path(path)
            if candidate.is_absolute():
                candidate = candidate.relative_to(self._repo_dir)
            relative.append(candidate.as_posix())
        return relative

    async def _git(self, *args: str) -> str:
        result = await self._runner.run(Command(program="git", args=args, cwd=self._repo_dir))
        return result.stdout

    async def stash_save(self, message: str) -> None:
        _logger.info("Stashing local changes", extra={"message": message})
        await self._git("stash", "save", message)

    async def checkout(self, paths: Iterable[Path | str]) -> None:
        relative = self._relative(paths)
        if not relative:
            return
        _logger.info("Restoring files from git", extra={"files": len(relative)})
        await self._git("checkout", "--", *relative)

    async def add(self, paths: Iterable[Path | str]) -> None:
        await self._git("add", "--", *self._relative(paths))

    async def commit(self, message: str) -> None:
        await self._git("commit", "-m", message)

    async def tag(self, name: str) -> None:
        await self._git("tag", name)

    async def push(self) -> None:
        await self._git("push")

    async def push_tags(self) -> None:
        await self._git("push", "--tags")
