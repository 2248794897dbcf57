# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Compilation of the executable projects, one output folder per platform.

Every distinct (arch, os) among the targets gets its own folder under
`<build>/build/<arch>-<os>`; all projects for that platform publish into it.
Primary projects are compiled last so their files win when two projects ship
the same dependency. Windows-only projects are skipped for other platforms,
and GUI projects are skipped when the release has no GUI.

The compiler itself is whatever `build.compile_command` says (dotnet publish
by default). Success means the output folder exists afterwards.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from relbuild.config.schema import BuildConfig
from relbuild.logging.logger import get_logger
from relbuild.release.errors import ExternalToolError, ReleaseConfigError
from relbuild.release.targets.catalog import Architecture, OperatingSystem, PackageTarget
from relbuild.release.tools.process import Command, CommandRunner, fill_argv
from relbuild.release.versioning.descriptor import ReleaseDescriptor

_logger: logging.Logger = get_logger(__name__)

_RUNTIME_ARCH = {
    Architecture.X86: "x86",
    Architecture.X64: "x64",
    Architecture.ARM64: "arm64",
    Architecture.ARM7: "arm",
}


def runtime_identifier(target: PackageTarget) -> str:
    """dotnet runtime id, e.g. 'linux-arm' for arm7-linux."""
    return f"{target.os.value}-{_RUNTIME_ARCH[target.arch]}"


class Compiler:
    def __init__(self, runner: CommandRunner, settings: BuildConfig) -> None:
        self._runner = runner
        self._settings = settings

    def discover_projects(self, base_dir: Path) -> list[Path]:
        """
        Find project files, primary projects last in their configured order.

        Raises:
            ReleaseConfigError: No projects, or a configured primary is missing.
        """
        found = sorted(base_dir.glob(self._settings.projects_glob))
        if not found:
            raise ReleaseConfigError(
                f"No projects match '{self._settings.projects_glob}' under {base_dir}"
            )

        by_name = {p.name.lower(): p for p in found}
        primaries: list[Path] = []
        for name in self._settings.primary_projects:
            project = by_name.get(name.lower())
            if project is None:
                raise ReleaseConfigError(f"Failed to find primary project {name} under {base_dir}")
            primaries.append(project)

        rest = [p for p in found if p not in primaries]
        return rest + primaries

    def output_dir(self, build_path: Path, target: PackageTarget) -> Path:
        return build_path / "build" / target.platform_id

    def _applies(self, project: Path, target: PackageTarget) -> bool:
        name = project.name.lower()
        if target.os is not OperatingSystem.WINDOWS and name in {
            p.lower() for p in self._settings.windows_only_projects
        }:
            return False
        if not self._settings.has_gui and name in {p.lower() for p in self._settings.gui_projects}:
            return False
        return True

    async def compile(
        self,
        base_dir: Path,
        build_path: Path,
        targets: Iterable[PackageTarget],
        release: ReleaseDescriptor,
        keep_builds: bool = False,
    ) -> dict[str, Path]:
        """
        Compile every project for every platform the targets need.

        Returns:
            Mapping of platform id ("x64-linux") to its output folder.

        Raises:
            ExternalToolError: A compile command failed or produced no output.
        """
        projects = self.discover_projects(base_dir)
        platforms: dict[str, PackageTarget] = {}
        for target in targets:
            platforms.setdefault(target.platform_id, target)

        outputs: dict[str, Path] = {}
        for platform_id, target in platforms.items():
            output = self.output_dir(build_path, target)
            outputs[platform_id] = output

            if keep_builds and output.is_dir() and any(output.iterdir()):
                _logger.info("Reusing existing build", extra={"platform": platform_id, "output": str(output)})
                continue

            _logger.info("Compiling", extra={"platform": platform_id, "projects": len(projects)})
            for project in projects:
                if not self._applies(project, target):
                    _logger.debug("Skipping project", extra={"project": project.name, "platform": platform_id})
                    continue
                argv = fill_argv(
                    self._settings.compile_command,
                    {
                        "project": str(project),
                        "runtime": runtime_identifier(target),
                        "output": str(output),
                        "version": release.version_string,
                    },
                )
                await self._runner.run(Command.of(argv, cwd=base_dir))

            if not output.is_dir():
                raise ExternalToolError(
                    f"compile {platform_id}", 0, f"no build output at {output}"
                )

        return outputs
