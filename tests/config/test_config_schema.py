# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Schema-level validation tests.

These focus on the pydantic models themselves: defaults, constraint
enforcement and the URL template check.
"""

import pytest
from pydantic import ValidationError

from relbuild.config.schema import (
    BuildConfig,
    GlobalConfig,
    KeysConfig,
    ReleaseBuilderConfig,
    SourceLayout,
    UrlsConfig,
)


class TestGlobalConfigSchema:
    def test_default_log_level_is_info(self) -> None:
        assert GlobalConfig().log_level == "INFO"

    def test_log_file_is_optional(self) -> None:
        assert GlobalConfig().log_file is None

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GlobalConfig(seed=1)  # type: ignore[call-arg]


class TestKeysConfig:
    @pytest.mark.parametrize("attempts", [1, 10])
    def test_attempt_bounds_inclusive(self, attempts: int) -> None:
        assert KeysConfig(password_attempts=attempts).password_attempts == attempts

    @pytest.mark.parametrize("attempts", [0, 11])
    def test_attempts_out_of_range(self, attempts: int) -> None:
        with pytest.raises(ValidationError):
            KeysConfig(password_attempts=attempts)


class TestUrlsConfig:
    def test_all_known_placeholders_accepted(self) -> None:
        raw = "https://x/${RELEASE_TYPE}/${RELEASE_VERSION}/${RELEASE_TIMESTAMP}/${FILENAME}"
        urls = UrlsConfig(package_urls=[raw])
        assert [t.raw for t in urls.package_templates()] == [raw]

    def test_bad_updater_url_rejected(self) -> None:
        with pytest.raises(ValidationError):
            UrlsConfig(updater_urls=["https://x/${CHANNEL}/${FILENAME}"])


class TestBuildConfig:
    def test_default_compile_command_placeholders(self) -> None:
        command = BuildConfig().compile_command
        assert command[0] == "dotnet"
        for placeholder in ("{project}", "{runtime}", "{output}"):
            assert placeholder in command

    def test_base_version_length(self) -> None:
        with pytest.raises(ValidationError):
            BuildConfig(base_version=[1, 2, 3, 4])


class TestReleaseBuilderConfig:
    def test_global_alias(self) -> None:
        config = ReleaseBuilderConfig.model_validate({"global": {"project_name": "aliased"}})
        assert config.global_config.project_name == "aliased"

    def test_field_name_also_accepted(self) -> None:
        config = ReleaseBuilderConfig(global_config=GlobalConfig(project_name="by-name"))
        assert config.global_config.project_name == "by-name"

    def test_default_source_layout(self) -> None:
        layout = ReleaseBuilderConfig().source
        assert layout == SourceLayout()
        assert layout.embedded_manifest_file == "AutoUpdater/autoupdate.manifest"
