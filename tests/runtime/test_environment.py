# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for host inspection and bootstrap.
"""

import dataclasses
import json
import logging
import shutil

import pytest

from relbuild.config.schema import GlobalConfig
from relbuild.logging.logger import ROOT_LOGGER_NAME
from relbuild.runtime.bootstrap import bootstrap
from relbuild.runtime.environment import HostEnvironment, check_minimum_python, get_system_info
from tests.fakes.runner import make_host


@pytest.fixture(autouse=True)
def _reset_root_logger() -> None:
    yield  # type: ignore[misc]
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def test_detect_maps_system_names():
    host = HostEnvironment.detect()
    assert host.system
    assert host.system == host.system.lower()


def test_detect_holds_no_process_environment():
    host = HostEnvironment.detect()
    assert [f.name for f in dataclasses.fields(host)] == ["system", "which"]
    assert host.which is shutil.which


def test_host_flags():
    assert make_host("win", []).is_windows
    assert make_host("osx", []).is_macos
    linux = make_host("linux", ["docker"])
    assert not linux.is_windows and not linux.is_macos
    assert linux.has_tool("docker")
    assert not linux.has_tool("wix")


def test_python_version_check_passes():
    """The test suite itself runs on a supported interpreter."""
    check_minimum_python()


def test_system_info():
    info = get_system_info()
    assert info.python_version.count(".") == 2


def test_bootstrap_cli_level_wins(capsys: pytest.CaptureFixture[str]):
    bootstrap(GlobalConfig(log_level="INFO"), log_level="DEBUG")
    records = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert records[-1]["msg"] == "relbuild bootstrap complete"
    assert records[-1]["level"] == "DEBUG"


def test_bootstrap_config_level(capsys: pytest.CaptureFixture[str]):
    bootstrap(GlobalConfig(log_level="WARNING"))
    assert capsys.readouterr().out == ""
