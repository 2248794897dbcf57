# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Per-target packaging.

Each target turns its platform's compiled folder into exactly one file under
`<build>/packages/`. zip archives are made in-process; every other format is
handed to the command configured in `build.packager_commands[<format>]`,
which must create the file named by `{output}`.

File names follow `<product>-<release name>-<target id>.<ext>`, so a
manifest URL template only needs `${FILENAME}`.
"""

import asyncio
import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from relbuild.config.schema import BuildConfig
from relbuild.logging.logger import get_logger
from relbuild.release.capabilities.resolver import Capabilities
from relbuild.release.errors import ExternalToolError, ReleaseConfigError
from relbuild.release.targets.catalog import (
    BuiltPackage,
    PackageFormat,
    PackageTarget,
    dependencies_for,
)
from relbuild.release.tools.process import Command, CommandRunner, fill_argv
from relbuild.release.versioning.descriptor import ReleaseDescriptor

_logger: logging.Logger = get_logger(__name__)

# Docker images are pushed, not downloaded; the packager leaves a text file
# with the pushed image references as the artifact.
_EXTENSIONS = {PackageFormat.DOCKER: "docker.txt"}


def package_filename(product: str, target: PackageTarget, release: ReleaseDescriptor) -> str:
    extension = _EXTENSIONS.get(target.format, target.format.value)
    return f"{product}-{release.name}-{target.platform_id}.{extension}"


class Packager:
    def __init__(self, runner: CommandRunner, settings: BuildConfig) -> None:
        self._runner = runner
        self._settings = settings

    def check_supported(self, targets: Iterable[PackageTarget]) -> None:
        """
        Fail before any mutation if a format has no way to be built.

        Raises:
            ReleaseConfigError: Listing formats without a packager command.
        """
        missing = sorted(
            {
                t.format.value
                for t in targets
                if t.format is not PackageFormat.ZIP and t.format.value not in self._settings.packager_commands
            }
        )
        if missing:
            raise ReleaseConfigError(
                f"No packager command configured for format(s): {', '.join(missing)}"
            )

    async def _zip(self, compiled_dir: Path, output: Path) -> None:
        base_name = str(output.with_suffix(""))
        await asyncio.to_thread(shutil.make_archive, base_name, "zip", root_dir=str(compiled_dir))

    async def build(
        self,
        compiled_dir: Path,
        target: PackageTarget,
        release: ReleaseDescriptor,
        packages_dir: Path,
        capabilities: Capabilities,
    ) -> BuiltPackage:
        """
        Package one target.

        Raises:
            ExternalToolError: The packager failed or did not produce its file.
        """
        packages_dir.mkdir(parents=True, exist_ok=True)
        output = packages_dir / package_filename(self._settings.product_name, target, release)
        if output.exists():
            output.unlink()

        _logger.info("Packaging", extra={"target": str(target), "output": output.name})

        template = self._settings.packager_commands.get(target.format.value)
        if template is None and target.format is PackageFormat.ZIP:
            await self._zip(compiled_dir, output)
        elif template is None:
            raise ReleaseConfigError(f"No packager command configured for {target.format.value}")
        else:
            values = {
                "input": str(compiled_dir),
                "output": str(output),
                "version": release.version_string,
                "channel": release.channel.value,
                "arch": target.arch.value,
                "os": target.os.value,
                "format": target.format.value,
                "depends": ", ".join(dependencies_for(target, self._settings.has_gui)),
                "app_name": self._settings.macos_app_name,
                "docker_repo": self._settings.docker_repo,
                "push": "true" if capabilities.docker_push else "false",
            }
            argv = fill_argv(template, values)
            await self._runner.run(Command.of(argv, cwd=compiled_dir.parent))

        if not output.is_file():
            raise ExternalToolError(f"package {target}", 0, f"packager did not create {output}")

        return BuiltPackage(target=target, created_file=output)
