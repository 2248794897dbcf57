# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for relbuild tests.

Fixtures here are available to every test file automatically:
  - a recording command runner that never spawns a process
  - a fast RSA key and keyfiles written with a low PBKDF2 iteration count
  - a small but complete source tree to build from
  - host descriptions for Linux and macOS build machines
"""

import textwrap
from pathlib import Path

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from relbuild.release.keys.keyfile import encrypt_keyfile
from relbuild.runtime.environment import HostEnvironment
from tests.fakes.keys import KEY_PASSWORD, TEST_ITERATIONS
from tests.fakes.runner import FakeCommandRunner, make_host


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """One 2048-bit key per test session; generating keys is the slow part."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def alternate_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture()
def keyfile(tmp_path: Path, rsa_key: rsa.RSAPrivateKey) -> Path:
    path = tmp_path / "keys" / "primary.key"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encrypt_keyfile(rsa_key, KEY_PASSWORD, iterations=TEST_ITERATIONS))
    return path


@pytest.fixture()
def alternate_keyfile(tmp_path: Path, alternate_rsa_key: rsa.RSAPrivateKey) -> Path:
    path = tmp_path / "keys" / "alternate.key"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encrypt_keyfile(alternate_rsa_key, KEY_PASSWORD, iterations=TEST_ITERATIONS))
    return path


@pytest.fixture()
def source_tree(tmp_path: Path) -> Path:
    """
    A solution folder laid out the way the default SourceLayout expects.

    Returns the solution file. The build counter starts at 41.
    """
    root = tmp_path / "src"
    files = {
        "App.sln": "solution",
        "Executables/CLI/CLI.csproj": "<Project />",
        "Executables/GUI/GUI.csproj": "<Project />",
        "Updates/build_version.txt": "41",
        "changelog.txt": "2.0.0.41: previous release\n",
        "changelog-news.txt": "Fixed bug X",
        "License/VersionTag.txt": "0.0.0.0",
        "AutoUpdater/AutoUpdateURL.txt": "",
        "AutoUpdater/AutoUpdateBuildChannel.txt": "",
        "AutoUpdater/AutoUpdateSignKeys.txt": "",
        "Server/webroot/index.html": textwrap.dedent("""\
            <script src="app.js?v=2.0.0.41"></script>
            <link href="style.css?v=1.2.*">
        """),
        "Server/webroot/js/app.js": "load('core.js?v=2.0.0.41');\n",
        "Server/webroot/js/untouched.js": "console.log('no version here');\n",
        "Server/webroot/readme.txt": "see ?v=1.0.0\n",
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root / "App.sln"


@pytest.fixture()
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture()
def linux_host() -> HostEnvironment:
    return make_host("linux", ["docker", "git"])


@pytest.fixture()
def macos_host() -> HostEnvironment:
    return make_host("osx", ["git", "codesign", "xcrun", "productsign"])


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """A small valid config YAML file."""
    config_content = textwrap.dedent("""\
        global:
          project_name: "relbuild-test"
          log_level: "DEBUG"
        keys:
          updater_keyfiles: ["keys/primary.key"]
        urls:
          package_urls:
            - "https://cdn.example.com/${RELEASE_TYPE}/${RELEASE_VERSION}/${FILENAME}"
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML that fails schema validation (unknown placeholder)."""
    config_content = textwrap.dedent("""\
        urls:
          package_urls:
            - "https://cdn.example.com/${RELEASE_VERISON}/${FILENAME}"
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
