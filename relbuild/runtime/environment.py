# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Host environment inspection.

The capability resolver needs to know which OS it is running on and which
tools are on PATH. Both are wrapped in HostEnvironment so tests can describe
a macOS signing box or a bare Linux runner without touching the real machine.
"""

import platform
import shutil
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple, Optional

MINIMUM_PYTHON_MAJOR = 3
MINIMUM_PYTHON_MINOR = 11

_SYSTEM_TOKENS = {"Windows": "win", "Linux": "linux", "Darwin": "osx"}


class SystemInfo(NamedTuple):
    """Snapshot of the current system environment."""

    python_version: str
    platform: str
    architecture: str
    hostname: str


def check_minimum_python() -> None:
    """
    Verify we're running Python 3.11+.

    Raises:
        RuntimeError: If Python version is below 3.11.
    """
    major, minor = sys.version_info[:2]
    if major < MINIMUM_PYTHON_MAJOR or (
        major == MINIMUM_PYTHON_MAJOR and minor < MINIMUM_PYTHON_MINOR
    ):
        raise RuntimeError(
            f"relbuild requires Python >= {MINIMUM_PYTHON_MAJOR}.{MINIMUM_PYTHON_MINOR}, "
            f"but you're running {major}.{minor}. Please upgrade."
        )


def get_system_info() -> SystemInfo:
    """Collect basic system information for logging and diagnostics."""
    return SystemInfo(
        python_version=platform.python_version(),
        platform=platform.system(),
        architecture=platform.machine(),
        hostname=platform.node(),
    )


@dataclass(frozen=True)
class HostEnvironment:
    """What the build machine is and which tools it has."""

    system: str
    which: Callable[[str], Optional[str]] = shutil.which

    @property
    def is_windows(self) -> bool:
        return self.system == "win"

    @property
    def is_macos(self) -> bool:
        return self.system == "osx"

    def has_tool(self, name: str) -> bool:
        return self.which(name) is not None

    @classmethod
    def detect(cls) -> "HostEnvironment":
        system = _SYSTEM_TOKENS.get(platform.system(), platform.system().lower())
        return cls(system=system, which=shutil.which)
