# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
External command execution.

Every external tool the pipeline drives (dotnet, packagers, osslsigncode,
codesign, xcrun, gpg, docker, git) goes through CommandRunner. The pipeline
only ever sees Command in and CommandResult out, so tests swap in a fake
runner that records commands instead of spawning processes.

Commands are awaited, not run in parallel by default: while a compiler runs
the event loop is free, but stages still advance one at a time.
"""

import asyncio
import logging
import shlex
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from relbuild.logging.logger import get_logger
from relbuild.release.errors import ExternalToolError, ReleaseConfigError

_logger: logging.Logger = get_logger(__name__)


REDACTED = "********"


@dataclass(frozen=True)
class Command:
    """
    A program, its arguments and where to run it.

    Values in `secrets` are passed to the program unchanged but never shown:
    `display` and `redact` replace them, so passwords on a command line do
    not end up in logs or error messages.
    """

    program: str
    args: tuple[str, ...] = ()
    cwd: Optional[Path] = None
    env: Optional[Mapping[str, str]] = field(default=None, compare=False)
    secrets: frozenset[str] = field(default=frozenset(), compare=False, repr=False)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def redact(self, text: str) -> str:
        for secret in self.secrets:
            if secret:
                text = text.replace(secret, REDACTED)
        return text

    @property
    def display(self) -> str:
        return self.redact(shlex.join(self.argv))

    @classmethod
    def of(cls, argv: list[str], cwd: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> "Command":
        if not argv:
            raise ValueError("Command needs at least a program name")
        return cls(program=argv[0], args=tuple(argv[1:]), cwd=cwd, env=env)


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner(ABC):
    """Abstract interface for running external commands."""

    @abstractmethod
    async def execute(self, command: Command) -> CommandResult:
        """Run the command to completion and return its result. Never raises on exit code."""
        ...

    async def run(self, command: Command, check: bool = True) -> CommandResult:
        """
        Run a command; with check=True a non-zero exit raises.

        Raises:
            ExternalToolError: If check is set and the command failed.
        """
        _logger.debug("Running command", extra={"command": command.display, "cwd": str(command.cwd)})
        result = await self.execute(command)
        if check and not result.ok:
            _logger.error(
                "Command failed",
                extra={"command": command.display, "exit_code": result.exit_code},
            )
            raise ExternalToolError(command.display, result.exit_code, command.redact(result.stderr))
        return result


class SubprocessRunner(CommandRunner):
    """Production implementation on asyncio subprocesses."""

    def __init__(self, timeout_seconds: Optional[float] = None) -> None:
        self._timeout = timeout_seconds

    async def execute(self, command: Command) -> CommandResult:
        try:
            process = await asyncio.create_subprocess_exec(
                *command.argv,
                cwd=str(command.cwd) if command.cwd is not None else None,
                env=dict(command.env) if command.env is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as err:
            # Same convention as a shell: 127 means "command not found".
            return CommandResult(exit_code=127, stderr=str(err))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(
                exit_code=-1,
                stderr=f"Process timed out after {self._timeout} seconds",
            )

        return CommandResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


def fill_argv(template: list[str], values: dict[str, str]) -> list[str]:
    """
    Fill `{name}` placeholders in an argv template.

    Raises:
        ReleaseConfigError: The template references an unknown placeholder.
    """
    try:
        return [part.format_map(values) for part in template]
    except (KeyError, IndexError, ValueError) as err:
        raise ReleaseConfigError(f"Bad placeholder in command template {template}: {err}") from err
