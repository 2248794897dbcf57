# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for relbuild.

Each config section gets its own frozen pydantic model:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked

Every section has defaults, so `relbuild build` runs without a config file.
In practice a release machine keeps a YAML file with at least `keys:` and
`signing:` filled in.

Paths in `build:` and `source:` are relative to the directory that holds the
solution file.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from relbuild.release.errors import InvalidUrlTemplate
from relbuild.release.manifests.templates import UrlTemplate


class GlobalConfig(BaseModel):
    """Cross-cutting settings: observability and project identity."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    project_name: str = Field(default="relbuild", description="Human-readable project identifier")
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )


class KeysConfig(BaseModel):
    """
    Update-signing keyfiles. The first entry is the primary key and signs the
    manifest; the rest are alternates shipped to clients for verification.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    updater_keyfiles: list[str] = Field(
        default_factory=list,
        description="Password-encrypted RSA keyfiles, primary first",
    )
    password_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times to ask for the primary keyfile password",
    )


class SigningConfig(BaseModel):
    """Credentials references for the four signing schemes."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    authenticode_pfx: Optional[str] = Field(default=None, description="PKCS#12 certificate for Authenticode")
    authenticode_password_file: Optional[str] = Field(
        default=None, description="File holding the pfx password"
    )
    timestamp_url: str = Field(
        default="http://timestamp.digicert.com",
        description="RFC 3161 timestamp server used by Authenticode",
    )
    codesign_identity: Optional[str] = Field(
        default=None, description="Apple 'Developer ID Application' identity"
    )
    installer_identity: Optional[str] = Field(
        default=None, description="Apple 'Developer ID Installer' identity for .pkg files"
    )
    notarize_profile: Optional[str] = Field(
        default=None, description="notarytool keychain profile name"
    )
    gpg_key_id: Optional[str] = Field(default=None, description="GPG key id used for detached signatures")
    gpg_passphrase_file: Optional[str] = Field(default=None, description="File holding the GPG passphrase")


class UrlsConfig(BaseModel):
    """
    URL templates. Allowed placeholders: ${RELEASE_TYPE}, ${RELEASE_VERSION},
    ${RELEASE_TIMESTAMP}, ${FILENAME}. Anything else fails at load time.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    package_urls: list[str] = Field(
        default_factory=lambda: ["https://updates.example.com/${RELEASE_TYPE}/${FILENAME}"],
        description="Download URLs written into each manifest entry",
    )
    updater_urls: list[str] = Field(
        default_factory=lambda: ["https://updates.example.com/${RELEASE_TYPE}/${FILENAME}"],
        description="Where the compiled client looks for the published manifest",
    )
    generic_update_page_url: str = Field(
        default="https://example.com/download",
        description="Fallback page shown when no package matches the client",
    )
    update_from_v1_url: Optional[str] = Field(default=None)

    @field_validator("package_urls", "updater_urls")
    @classmethod
    def _check_templates(cls, value: list[str]) -> list[str]:
        for raw in value:
            try:
                UrlTemplate(raw)
            except InvalidUrlTemplate as err:
                raise ValueError(str(err)) from err
        return value

    def package_templates(self) -> list[UrlTemplate]:
        return [UrlTemplate(raw) for raw in self.package_urls]

    def updater_templates(self) -> list[UrlTemplate]:
        return [UrlTemplate(raw) for raw in self.updater_urls]


class BuildConfig(BaseModel):
    """Compile and package settings."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    product_name: str = Field(default="app", description="Prefix of every package file name")
    base_version: list[int] = Field(
        default_factory=lambda: [2, 0, 0],
        min_length=3,
        max_length=3,
        description="First three version parts when the build counter supplies the fourth",
    )
    counter_file: str = Field(
        default="Updates/build_version.txt",
        description="Integer build counter, incremented for each release",
    )
    projects_glob: str = Field(
        default="Executables/*/*.csproj",
        description="Glob for the executable projects to compile",
    )
    primary_projects: list[str] = Field(
        default_factory=list,
        description="Projects compiled last, in this order (their output wins on clashes)",
    )
    windows_only_projects: list[str] = Field(default_factory=list)
    gui_projects: list[str] = Field(default_factory=list)
    compile_command: list[str] = Field(
        default_factory=lambda: [
            "dotnet", "publish", "{project}",
            "--configuration", "Release",
            "--runtime", "{runtime}",
            "--self-contained", "true",
            "--output", "{output}",
        ],
        description="argv template; {project}, {runtime}, {output}, {version} are filled in",
    )
    packager_commands: dict[str, list[str]] = Field(
        default_factory=dict,
        description=(
            "argv template per package format. zip is built in-process when absent. "
            "Placeholders: {input} {output} {version} {channel} {arch} {os} {format} "
            "{depends} {app_name} {docker_repo} {push}"
        ),
    )
    has_gui: bool = Field(default=True, description="Whether packages bundle the GUI executable")
    macos_app_name: str = Field(default="App.app")
    docker_repo: str = Field(default="example/app")
    wix_path: Optional[str] = Field(default=None, description="WiX toolset binary; PATH lookup otherwise")


class SourceLayout(BaseModel):
    """Well-known files inside the source tree that receive the release identity."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    version_tag_file: str = Field(default="License/VersionTag.txt")
    update_url_file: str = Field(default="AutoUpdater/AutoUpdateURL.txt")
    build_channel_file: str = Field(default="AutoUpdater/AutoUpdateBuildChannel.txt")
    sign_keys_file: str = Field(default="AutoUpdater/AutoUpdateSignKeys.txt")
    embedded_manifest_file: str = Field(default="AutoUpdater/autoupdate.manifest")
    webroot_dir: str = Field(default="Server/webroot")
    changelog_file: str = Field(default="changelog.txt")


class ReleaseBuilderConfig(BaseModel):
    """Top-level config container."""

    model_config = ConfigDict(
        frozen=True, extra="forbid", validate_default=True, populate_by_name=True
    )

    global_config: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    keys: KeysConfig = Field(default_factory=KeysConfig)
    signing: SigningConfig = Field(default_factory=SigningConfig)
    urls: UrlsConfig = Field(default_factory=UrlsConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    source: SourceLayout = Field(default_factory=SourceLayout)
