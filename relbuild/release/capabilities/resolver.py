# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Capability resolution and target pruning.

A capability is active iff it is not explicitly disabled AND the host can
actually do it (right OS, tool on PATH, credentials configured). Each
decision is logged with its reason so a release engineer can see why, say,
notarization was skipped.

Pruning is deliberately asymmetric:
  - macOS-only formats (dmg, pkg) are always dropped silently off macOS, so a
    Linux developer is not blocked by the default "everything" target set;
  - msi and docker-backed formats (deb, rpm, docker) are dropped silently only
    when they came from the default set. If they were asked for explicitly
    and their capability is missing, that is a configuration mistake and the
    run stops before anything is mutated.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from relbuild.config.schema import ReleaseBuilderConfig
from relbuild.logging.logger import get_logger
from relbuild.release.errors import UnsatisfiableTargets
from relbuild.release.keys.keystore import KeyStore
from relbuild.release.targets.catalog import PackageTarget
from relbuild.release.tools.process import Command, CommandRunner
from relbuild.release.versioning.descriptor import ReleaseDescriptor
from relbuild.runtime.environment import HostEnvironment

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class BuildFlags:
    """Explicit operator switches from the command line."""

    disable_authenticode: bool = False
    disable_codesign: bool = False
    disable_notarize: bool = False
    disable_gpg: bool = False
    disable_docker_push: bool = False
    disable_docker_build: bool = False


@dataclass(frozen=True)
class Capabilities:
    authenticode: bool = False
    codesign: bool = False
    notarize: bool = False
    gpg: bool = False
    docker_build: bool = False
    docker_push: bool = False
    msi_build: bool = False
    macos_packages: bool = False


@dataclass(frozen=True)
class RuntimeConfig:
    """
    Everything a run needs after validation, passed explicitly to every
    component. Built once and never changed afterwards.
    """

    capabilities: Capabilities
    release: ReleaseDescriptor
    keystore: KeyStore
    changelog_news: str
    settings: ReleaseBuilderConfig


def _decide(name: str, disabled: bool, checks: list[tuple[bool, str]]) -> bool:
    if disabled:
        _logger.info("Capability disabled by flag", extra={"capability": name})
        return False
    for passed, reason in checks:
        if not passed:
            _logger.info(
                "Capability unavailable",
                extra={"capability": name, "reason": reason},
            )
            return False
    _logger.info("Capability enabled", extra={"capability": name})
    return True


def _file_configured(value: str | None) -> bool:
    return value is not None and Path(value).is_file()


async def _docker_daemon_running(runner: CommandRunner) -> bool:
    result = await runner.run(Command(program="docker", args=("info",)), check=False)
    return result.ok


async def resolve_capabilities(
    host: HostEnvironment,
    flags: BuildFlags,
    settings: ReleaseBuilderConfig,
    runner: CommandRunner,
) -> Capabilities:
    signing = settings.signing
    sign_tool = "signtool" if host.is_windows else "osslsigncode"

    authenticode = _decide(
        "authenticode",
        flags.disable_authenticode,
        [
            (_file_configured(signing.authenticode_pfx), "authenticode_pfx not configured or missing"),
            (_file_configured(signing.authenticode_password_file), "authenticode_password_file not configured or missing"),
            (host.has_tool(sign_tool), f"{sign_tool} not found on PATH"),
        ],
    )
    codesign = _decide(
        "codesign",
        flags.disable_codesign,
        [
            (host.is_macos, "codesign requires macOS"),
            (bool(signing.codesign_identity), "codesign_identity not configured"),
            (host.has_tool("codesign"), "codesign not found on PATH"),
        ],
    )
    notarize = _decide(
        "notarize",
        flags.disable_notarize,
        [
            (host.is_macos, "notarization requires macOS"),
            (bool(signing.notarize_profile), "notarize_profile not configured"),
            (host.has_tool("xcrun"), "xcrun not found on PATH"),
        ],
    )
    gpg = _decide(
        "gpg",
        flags.disable_gpg,
        [
            (bool(signing.gpg_key_id), "gpg_key_id not configured"),
            (host.has_tool("gpg"), "gpg not found on PATH"),
        ],
    )

    docker_build = False
    if flags.disable_docker_build:
        _decide("docker_build", True, [])
    elif not host.has_tool("docker"):
        _decide("docker_build", False, [(False, "docker not found on PATH")])
    else:
        running = await _docker_daemon_running(runner)
        docker_build = _decide("docker_build", False, [(running, "docker daemon not reachable")])

    docker_push = _decide(
        "docker_push",
        flags.disable_docker_push,
        [(docker_build, "docker build capability is not active")],
    )

    wix = settings.build.wix_path
    msi_build = _decide(
        "msi_build",
        False,
        [((wix is not None and Path(wix).is_file()) or host.has_tool("wix"), "WiX toolset not configured")],
    )
    macos_packages = _decide("macos_packages", False, [(host.is_macos, "dmg/pkg require macOS")])

    return Capabilities(
        authenticode=authenticode,
        codesign=codesign,
        notarize=notarize,
        gpg=gpg,
        docker_build=docker_build,
        docker_push=docker_push,
        msi_build=msi_build,
        macos_packages=macos_packages,
    )


def prune_targets(
    targets: Iterable[PackageTarget],
    capabilities: Capabilities,
    explicit: bool,
) -> tuple[PackageTarget, ...]:
    """
    Drop targets the host cannot build.

    Only macOS-only formats (off macOS) and msi (without wix, from the default
    set) are removed quietly. Docker-backed formats without docker_build
    always fail, whether they were listed or came from the default set.

    Args:
        targets: Validated targets.
        capabilities: Resolved capabilities.
        explicit: True if the operator listed the targets, False if they are
            the default "all supported" set.

    Raises:
        UnsatisfiableTargets: deb/rpm/docker targets without docker_build, or
            explicit msi targets without msi_build, listing every offender.
    """
    kept: list[PackageTarget] = []
    dropped: list[PackageTarget] = []
    offending: list[PackageTarget] = []

    for target in targets:
        fmt = target.format
        if fmt.is_macos_only and not capabilities.macos_packages:
            dropped.append(target)
        elif fmt.requires_docker and not capabilities.docker_build:
            offending.append(target)
        elif fmt.is_msi and not capabilities.msi_build:
            if explicit:
                offending.append(target)
            else:
                dropped.append(target)
        else:
            kept.append(target)

    if offending:
        raise UnsatisfiableTargets(offending)

    if dropped:
        _logger.warning(
            "Removing targets this host cannot build",
            extra={"removed": [str(t) for t in dropped]},
        )
    return tuple(kept)
