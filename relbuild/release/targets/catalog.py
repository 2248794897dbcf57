# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Package target catalog.

A target is one buildable artifact: an (operating system, architecture,
package format) triple written as "<arch>-<os>.<format>", e.g. "x64-win.msi".
The parser also accepts "<os>-<arch>.<format>"; the OS and architecture
vocabularies do not overlap, so the order is never ambiguous.

Everything here is pure lookup and validation. No I/O.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from relbuild.logging.logger import get_logger
from relbuild.release.errors import InvalidTargetFormat, UnsupportedTargets

_logger: logging.Logger = get_logger(__name__)


class OperatingSystem(str, Enum):
    WINDOWS = "win"
    LINUX = "linux"
    MACOS = "osx"


class Architecture(str, Enum):
    X86 = "x86"
    X64 = "x64"
    ARM64 = "arm64"
    ARM7 = "arm7"


class PackageFormat(str, Enum):
    ZIP = "zip"
    MSI = "msi"
    DEB = "deb"
    RPM = "rpm"
    DOCKER = "docker"
    DMG = "dmg"
    PKG = "pkg"

    @property
    def is_macos_only(self) -> bool:
        return self in (PackageFormat.DMG, PackageFormat.PKG)

    @property
    def requires_docker(self) -> bool:
        return self in (PackageFormat.DEB, PackageFormat.RPM, PackageFormat.DOCKER)

    @property
    def is_msi(self) -> bool:
        return self is PackageFormat.MSI


_OS_BY_TOKEN = {member.value: member for member in OperatingSystem}
_ARCH_BY_TOKEN = {member.value: member for member in Architecture}
_FORMAT_BY_TOKEN = {member.value: member for member in PackageFormat}


@dataclass(frozen=True, order=True)
class PackageTarget:
    """One (arch, os, format) triple. Equality and hashing follow the id."""

    arch: Architecture
    os: OperatingSystem
    format: PackageFormat

    @property
    def target_id(self) -> str:
        return f"{self.arch.value}-{self.os.value}.{self.format.value}"

    @property
    def platform_id(self) -> str:
        """The compile platform, shared by every format of the same os/arch."""
        return f"{self.arch.value}-{self.os.value}"

    def __str__(self) -> str:
        return self.target_id

    @classmethod
    def parse(cls, raw: str) -> "PackageTarget":
        """
        Parse a target token.

        Raises:
            InvalidTargetFormat: If the token is malformed or any of its three
                parts is unknown. Unknown parts never fall back to a default.
        """
        token = raw.strip().lower()
        platform_part, sep, format_part = token.rpartition(".")
        if not sep or not platform_part or not format_part:
            raise InvalidTargetFormat(raw, "expected '<arch>-<os>.<format>'")

        pieces = platform_part.split("-")
        if len(pieces) != 2:
            raise InvalidTargetFormat(raw, "expected exactly one '-' between arch and os")

        first, second = pieces
        if first in _ARCH_BY_TOKEN and second in _OS_BY_TOKEN:
            arch_token, os_token = first, second
        elif first in _OS_BY_TOKEN and second in _ARCH_BY_TOKEN:
            os_token, arch_token = first, second
        else:
            unknown = [p for p in pieces if p not in _ARCH_BY_TOKEN and p not in _OS_BY_TOKEN]
            detail = f"unknown token(s) {', '.join(unknown)}" if unknown else "need one arch and one os"
            raise InvalidTargetFormat(raw, detail)

        package_format = _FORMAT_BY_TOKEN.get(format_part)
        if package_format is None:
            raise InvalidTargetFormat(raw, f"unknown package format '{format_part}'")

        return cls(
            arch=_ARCH_BY_TOKEN[arch_token],
            os=_OS_BY_TOKEN[os_token],
            format=package_format,
        )


def parse_target(raw: str) -> PackageTarget:
    return PackageTarget.parse(raw)


def _build_catalog() -> frozenset[PackageTarget]:
    win = OperatingSystem.WINDOWS
    linux = OperatingSystem.LINUX
    osx = OperatingSystem.MACOS
    A = Architecture
    F = PackageFormat

    matrix: list[tuple[OperatingSystem, tuple[Architecture, ...], tuple[PackageFormat, ...]]] = [
        (win, (A.X86, A.X64, A.ARM64), (F.ZIP, F.MSI)),
        (linux, (A.X64, A.ARM64, A.ARM7), (F.ZIP, F.DEB, F.RPM, F.DOCKER)),
        (osx, (A.X64, A.ARM64), (F.ZIP, F.DMG, F.PKG)),
    ]
    return frozenset(
        PackageTarget(arch=arch, os=os_, format=fmt)
        for os_, arches, formats in matrix
        for arch in arches
        for fmt in formats
    )


SUPPORTED_TARGETS: frozenset[PackageTarget] = _build_catalog()


def validate_targets(
    requested: Iterable[PackageTarget],
    supported: frozenset[PackageTarget] = SUPPORTED_TARGETS,
) -> tuple[PackageTarget, ...]:
    """
    Check requested targets against the supported set.

    An empty request means "everything supported". Duplicates collapse to the
    first occurrence.

    Raises:
        UnsupportedTargets: Listing every offending target, not just the first.
    """
    unique = tuple(dict.fromkeys(requested))
    if not unique:
        return tuple(sorted(supported))

    offending = [t for t in unique if t not in supported]
    if offending:
        raise UnsupportedTargets(offending)

    _logger.debug("Targets validated", extra={"targets": [str(t) for t in unique]})
    return unique


_DEBIAN_GUI_DEPENDS: tuple[str, ...] = (
    "libice6",
    "libsm6",
    "libfontconfig1",
    "libicu70 | libicu71 | libicu72",
    "libssl3",
)
_DEBIAN_CLI_DEPENDS: tuple[str, ...] = ("libicu70 | libicu71 | libicu72", "libssl3")
_FEDORA_GUI_DEPENDS: tuple[str, ...] = ("libICE", "libSM", "fontconfig", "libicu")
_FEDORA_CLI_DEPENDS: tuple[str, ...] = ("libicu",)


def dependencies_for(target: PackageTarget, has_gui: bool) -> list[str]:
    """OS package dependencies for deb/rpm targets; empty for everything else."""
    if target.format is PackageFormat.DEB:
        return list(_DEBIAN_GUI_DEPENDS if has_gui else _DEBIAN_CLI_DEPENDS)
    if target.format is PackageFormat.RPM:
        return list(_FEDORA_GUI_DEPENDS if has_gui else _FEDORA_CLI_DEPENDS)
    return []


@dataclass(frozen=True)
class BuiltPackage:
    """One successfully packaged target and the file it produced."""

    target: PackageTarget
    created_file: Path

    @property
    def filename(self) -> str:
        return self.created_file.name
