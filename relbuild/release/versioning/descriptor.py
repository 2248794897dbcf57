# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release identity: version, channel and date.

A run gets exactly one ReleaseDescriptor, from one of two sources:
  - the build counter file (read, incremented in memory, never written here)
  - an explicit --version override, which skips the counter file entirely

Persisting the incremented counter is the Tagged stage's job, through git.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional

from relbuild.logging.logger import get_logger
from relbuild.release.errors import InvalidVersion, ReleaseConfigError
from relbuild.utils.filesystem import atomic_write

_logger: logging.Logger = get_logger(__name__)

Version = tuple[int, int, int, int]


class Channel(str, Enum):
    STABLE = "stable"
    BETA = "beta"
    EXPERIMENTAL = "experimental"
    CANARY = "canary"


@dataclass(frozen=True)
class ReleaseDescriptor:
    """Immutable identity of a single release run."""

    version: Version
    channel: Channel
    timestamp: date

    @property
    def version_string(self) -> str:
        return ".".join(str(part) for part in self.version)

    @property
    def date_string(self) -> str:
        return self.timestamp.strftime("%Y-%m-%d")

    @property
    def name(self) -> str:
        """Human identifier only, e.g. '2.0.0.101_canary_2026-10-18'."""
        return f"{self.version_string}_{self.channel.value}_{self.date_string}"

    @property
    def build_number(self) -> int:
        return self.version[3]


def parse_version(version_string: str) -> Version:
    """
    Parse 'a.b', 'a.b.c' or 'a.b.c.d' into a 4-tuple, padding with zeros.

    Raises:
        InvalidVersion: On anything else, including negative or empty parts.
    """
    parts = version_string.strip().split(".")
    if not 2 <= len(parts) <= 4 or not all(p.isdigit() for p in parts):
        raise InvalidVersion(
            f"Invalid version '{version_string}': expected 2 to 4 dot-separated integers"
        )
    numbers = [int(p) for p in parts] + [0] * (4 - len(parts))
    return (numbers[0], numbers[1], numbers[2], numbers[3])


def read_counter(counter_file: Path) -> int:
    if not counter_file.is_file():
        raise ReleaseConfigError(f"Version file not found: {counter_file}")
    raw = counter_file.read_text(encoding="utf-8").strip()
    try:
        return int(raw)
    except ValueError as err:
        raise InvalidVersion(
            f"Version file {counter_file} must contain an integer, got {raw!r}"
        ) from err


def from_increment(
    channel: Channel,
    counter_file: Path,
    base_version: tuple[int, int, int] = (2, 0, 0),
    today: Optional[date] = None,
) -> ReleaseDescriptor:
    counter = read_counter(counter_file) + 1
    release = ReleaseDescriptor(
        version=(base_version[0], base_version[1], base_version[2], counter),
        channel=channel,
        timestamp=today or date.today(),
    )
    _logger.info(
        "Release version from build counter",
        extra={"counter_file": str(counter_file), "release": release.name},
    )
    return release


def from_override(
    channel: Channel,
    version_string: str,
    today: Optional[date] = None,
) -> ReleaseDescriptor:
    release = ReleaseDescriptor(
        version=parse_version(version_string),
        channel=channel,
        timestamp=today or date.today(),
    )
    _logger.info("Release version from override", extra={"release": release.name})
    return release


def create_release(
    channel: Channel,
    counter_file: Path,
    version_override: Optional[str] = None,
    base_version: tuple[int, int, int] = (2, 0, 0),
    today: Optional[date] = None,
) -> ReleaseDescriptor:
    """Pick the override when given (non-blank), otherwise the counter file."""
    if version_override is not None and version_override.strip():
        return from_override(channel, version_override, today=today)
    return from_increment(channel, counter_file, base_version=base_version, today=today)


def write_counter(counter_file: Path, release: ReleaseDescriptor) -> None:
    """Persist the release build number back into the counter file."""
    atomic_write(counter_file, str(release.build_number))
