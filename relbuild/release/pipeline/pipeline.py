# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The release pipeline.

One run moves through fixed states, strictly in order:

    VALIDATED -> SOURCE_STAMPED -> COMPILED -> PACKAGED -> SIGNED
      -> MANIFEST_BUILT -> PACKAGES_UPLOADED -> CLEANED -> TAGGED

Everything that can be checked without side effects is checked in VALIDATED:
solution file, targets, capabilities, changelog news, version, keys. Only
after that does the run touch the source tree. From then on the first
failure aborts the run. There is no automatic rollback; the files that need
restoring are logged so the operator can `git checkout` them.

Within a state, per-artifact work (hashing, signing) may run concurrently,
but the state only advances once all of it has finished.
"""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from relbuild.config.schema import ReleaseBuilderConfig
from relbuild.logging.logger import get_logger
from relbuild.release.capabilities.resolver import (
    BuildFlags,
    RuntimeConfig,
    prune_targets,
    resolve_capabilities,
)
from relbuild.release.cleanup.cleaner import publish_manifest, restore_list, revert_source_tree
from relbuild.release.errors import CredentialError, ReleaseConfigError
from relbuild.release.keys.keystore import PasswordPrompt, load_keystore
from relbuild.release.manifests.manifest import (
    BUILD_MANIFEST_NAME,
    build_manifest,
    write_signed_manifest,
)
from relbuild.release.source.mutator import RevertSet, build_embedded_manifest, stamp
from relbuild.release.targets.catalog import BuiltPackage, PackageTarget, parse_target, validate_targets
from relbuild.release.tools.compiler import Compiler
from relbuild.release.tools.packager import Packager
from relbuild.release.tools.process import CommandRunner
from relbuild.release.tools.signers import Signers
from relbuild.release.tools.vcs import Git
from relbuild.release.versioning.descriptor import (
    Channel,
    ReleaseDescriptor,
    create_release,
    write_counter,
)
from relbuild.runtime.environment import HostEnvironment
from relbuild.utils.filesystem import reset_directory, safe_delete

_logger: logging.Logger = get_logger(__name__)


class PipelineState(str, Enum):
    VALIDATED = "validated"
    SOURCE_STAMPED = "source_stamped"
    COMPILED = "compiled"
    PACKAGED = "packaged"
    SIGNED = "signed"
    MANIFEST_BUILT = "manifest_built"
    PACKAGES_UPLOADED = "packages_uploaded"
    CLEANED = "cleaned"
    TAGGED = "tagged"


class BuildOutcome(str, Enum):
    COMPLETED = "completed"
    # Soft stop: the operator has to create the news file first.
    MISSING_CHANGELOG = "missing_changelog"


@dataclass(frozen=True)
class BuildRequest:
    """What the operator asked for on the command line."""

    solution_file: Path
    changelog_file: Path
    build_path: Path
    channel: Channel = Channel.CANARY
    version: Optional[str] = None
    targets: tuple[str, ...] = ()
    password: Optional[str] = None
    flags: BuildFlags = field(default_factory=BuildFlags)
    keep_builds: bool = False
    git_stash_push: bool = True


@dataclass(frozen=True)
class BuildResult:
    outcome: BuildOutcome
    release: Optional[ReleaseDescriptor] = None
    packages: tuple[BuiltPackage, ...] = ()
    manifest_path: Optional[Path] = None
    states: tuple[PipelineState, ...] = ()


@dataclass(frozen=True)
class _Validated:
    base_dir: Path
    targets: tuple[PackageTarget, ...]
    runtime: RuntimeConfig


async def _run_all(work: Iterable[Coroutine[Any, Any, object]]) -> None:
    """
    Run per-artifact work concurrently.

    The first failure cancels the siblings still running and is re-raised
    as itself, not wrapped in an ExceptionGroup.
    """
    try:
        async with asyncio.TaskGroup() as group:
            for coroutine in work:
                group.create_task(coroutine)
    except ExceptionGroup as err:
        raise err.exceptions[0]


class PackagePipeline:
    """
    Drives one release build from request to tag.

    Collaborators are injected so tests can replace every external tool with
    a recording runner. Anything not passed in is built from `runner`.
    """

    def __init__(
        self,
        settings: ReleaseBuilderConfig,
        runner: CommandRunner,
        prompt: Optional[PasswordPrompt] = None,
        host: Optional[HostEnvironment] = None,
        compiler: Optional[Compiler] = None,
        packager: Optional[Packager] = None,
        signers: Optional[Signers] = None,
        vcs: Optional[Git] = None,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._prompt = prompt
        self._host = host or HostEnvironment.detect()
        self._compiler = compiler or Compiler(runner, settings.build)
        self._packager = packager or Packager(runner, settings.build)
        self._signers = signers or Signers(runner, settings.signing, self._host)
        self._vcs = vcs

    # --- VALIDATED -----------------------------------------------------------

    def _resolve_password(self, request: BuildRequest) -> str:
        if request.password:
            return request.password
        if self._prompt is None:
            raise CredentialError("No keyfile password given and no way to ask for one")
        return self._prompt("Enter keyfile password")

    async def _validate(self, request: BuildRequest) -> _Validated | BuildResult:
        solution = request.solution_file.resolve()
        if not solution.is_file():
            raise ReleaseConfigError(f"Solution file not found: {solution}")
        base_dir = solution.parent

        explicit = bool(request.targets)
        targets = validate_targets(parse_target(t) for t in request.targets)

        capabilities = await resolve_capabilities(self._host, request.flags, self._settings, self._runner)
        targets = prune_targets(targets, capabilities, explicit=explicit)
        if not targets:
            raise ReleaseConfigError("No buildable targets left after removing unsupported ones")
        self._packager.check_supported(targets)
        self._compiler.discover_projects(base_dir)

        if not request.changelog_file.is_file():
            changelog = request.changelog_file.resolve()
            _logger.error(
                "Changelog news file not found. Create an empty file for a release without changes",
                extra={"changelog_file": str(changelog), "hint": f"touch {changelog}"},
            )
            return BuildResult(outcome=BuildOutcome.MISSING_CHANGELOG)
        changelog_news = request.changelog_file.read_text(encoding="utf-8")

        build = self._settings.build
        release = create_release(
            request.channel,
            base_dir / build.counter_file,
            version_override=request.version,
            base_version=(build.base_version[0], build.base_version[1], build.base_version[2]),
        )
        _logger.info("Building release", extra={"release": release.name, "targets": [str(t) for t in targets]})

        keystore = load_keystore(
            [Path(p).expanduser() for p in self._settings.keys.updater_keyfiles],
            self._resolve_password(request),
            prompt=self._prompt,
            max_attempts=self._settings.keys.password_attempts,
        )

        runtime = RuntimeConfig(
            capabilities=capabilities,
            release=release,
            keystore=keystore,
            changelog_news=changelog_news,
            settings=self._settings,
        )
        return _Validated(base_dir=base_dir, targets=targets, runtime=runtime)

    # --- SIGNED --------------------------------------------------------------

    async def _sign(self, packages: tuple[BuiltPackage, ...], runtime: RuntimeConfig) -> None:
        capabilities = runtime.capabilities
        signers = self._signers

        if capabilities.authenticode:
            await _run_all(signers.authenticode(p.created_file) for p in packages if p.target.format.is_msi)

        apple = [p for p in packages if p.target.format.is_macos_only]
        if capabilities.codesign and apple:
            await _run_all(signers.codesign(p.created_file, p.target.format) for p in apple)
        if capabilities.notarize and apple:
            await _run_all(signers.notarize(p.created_file) for p in apple)

        if capabilities.gpg:
            await _run_all(signers.gpg(p.created_file) for p in packages)

    # --- run -----------------------------------------------------------------

    async def run(self, request: BuildRequest) -> BuildResult:
        """
        Execute the whole pipeline.

        Returns:
            BuildResult with outcome MISSING_CHANGELOG if the news file does
            not exist (nothing was changed), COMPLETED otherwise.

        Raises:
            ReleaseConfigError: Invalid request, detected before any mutation.
            CredentialError: Keyfile problems, detected before any mutation.
            ExternalToolError: A tool failed; the run stops where it is.
        """
        validated = await self._validate(request)
        if isinstance(validated, BuildResult):
            return validated

        states: list[PipelineState] = [PipelineState.VALIDATED]
        base_dir = validated.base_dir
        runtime = validated.runtime
        release = runtime.release
        targets = validated.targets
        layout = self._settings.source
        git = self._vcs or Git(self._runner, base_dir)

        build_path = request.build_path.resolve()
        packages_dir = build_path / "packages"
        reset_directory(build_path, keep_existing=request.keep_builds)

        revert_set: RevertSet = ()
        try:
            if request.git_stash_push:
                await git.stash_save(f"auto-build-{release.date_string}")
            revert_set = stamp(base_dir, runtime)
            await build_embedded_manifest(base_dir, runtime)
            states.append(PipelineState.SOURCE_STAMPED)

            outputs = await self._compiler.compile(
                base_dir, build_path, targets, release, keep_builds=request.keep_builds
            )
            states.append(PipelineState.COMPILED)

            built: list[BuiltPackage] = []
            for target in targets:
                built.append(
                    await self._packager.build(
                        outputs[target.platform_id], target, release, packages_dir, runtime.capabilities
                    )
                )
            packages = tuple(built)
            states.append(PipelineState.PACKAGED)

            await self._sign(packages, runtime)
            states.append(PipelineState.SIGNED)

            manifest_file = packages_dir / BUILD_MANIFEST_NAME
            safe_delete(manifest_file)
            urls = self._settings.urls
            signed = await build_manifest(
                runtime.keystore.primary,
                packages,
                release,
                urls.package_templates(),
                change_info=runtime.changelog_news,
                generic_update_page_url=urls.generic_update_page_url,
                update_from_v1_url=urls.update_from_v1_url,
            )
            write_signed_manifest(manifest_file, signed)
            states.append(PipelineState.MANIFEST_BUILT)

            _logger.info("No upload target configured, packages stay local", extra={"packages_dir": str(packages_dir)})
            states.append(PipelineState.PACKAGES_UPLOADED)

            published = publish_manifest(packages_dir)
            if runtime.capabilities.gpg:
                await self._signers.gpg(published)
            await revert_source_tree(git, base_dir, layout, revert_set)
            states.append(PipelineState.CLEANED)
        except Exception:
            _logger.error(
                "Release build aborted, source tree is not restored automatically",
                extra={
                    "release": release.name,
                    "reached": [s.value for s in states],
                    "restore": [str(p) for p in restore_list(base_dir, layout, revert_set)],
                },
            )
            raise

        if request.git_stash_push:
            await self._tag(git, base_dir, runtime, version_override=request.version)
            states.append(PipelineState.TAGGED)

        _logger.info("Release build completed", extra={"release": release.name, "packages": len(packages)})
        return BuildResult(
            outcome=BuildOutcome.COMPLETED,
            release=release,
            packages=packages,
            manifest_path=published,
            states=tuple(states),
        )

    # --- TAGGED --------------------------------------------------------------

    async def _tag(
        self,
        git: Git,
        base_dir: Path,
        runtime: RuntimeConfig,
        version_override: Optional[str],
    ) -> None:
        release = runtime.release
        changed: list[Path] = []
        if runtime.changelog_news.strip():
            changed.append(base_dir / self._settings.source.changelog_file)

        # An explicit version does not come from the counter, so leave it alone.
        if not (version_override and version_override.strip()):
            counter_file = base_dir / self._settings.build.counter_file
            write_counter(counter_file, release)
            changed.append(counter_file)

        tag = f"v{release.name}"
        if changed:
            await git.add(changed)
            await git.commit(f"Version bump to {tag}")
        await git.tag(tag)
        await git.push()
        await git.push_tags()
        _logger.info("Release tagged and pushed", extra={"tag": tag})
