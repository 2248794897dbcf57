# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Download/update URL templates.

Templates use `${NAME}` placeholders from a closed set. They are checked when
the config is loaded, so a typo like `${RELEASE_VERISON}` fails before the
build starts instead of leaking a half-substituted URL into the manifest.
"""

from dataclasses import dataclass
from string import Template

from relbuild.release.errors import InvalidUrlTemplate
from relbuild.release.versioning.descriptor import ReleaseDescriptor

PLACEHOLDERS: frozenset[str] = frozenset(
    {"RELEASE_TYPE", "RELEASE_VERSION", "RELEASE_TIMESTAMP", "FILENAME"}
)


@dataclass(frozen=True)
class UrlTemplate:
    raw: str

    def __post_init__(self) -> None:
        template = Template(self.raw)
        if not template.is_valid():
            raise InvalidUrlTemplate(f"Malformed URL template: {self.raw!r}")
        unknown = set(template.get_identifiers()) - PLACEHOLDERS
        if unknown:
            raise InvalidUrlTemplate(
                f"URL template {self.raw!r} uses unknown placeholder(s): "
                f"{', '.join(sorted(unknown))}. Allowed: {', '.join(sorted(PLACEHOLDERS))}"
            )

    def render(self, release: ReleaseDescriptor, filename: str) -> str:
        return Template(self.raw).substitute(
            RELEASE_TYPE=release.channel.value,
            RELEASE_VERSION=release.version_string,
            RELEASE_TIMESTAMP=release.date_string,
            FILENAME=filename,
        )


def render_all(templates: list[UrlTemplate], release: ReleaseDescriptor, filename: str) -> tuple[str, ...]:
    return tuple(t.render(release, filename) for t in templates)
