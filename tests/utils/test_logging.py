# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the structured JSON logger.

We verify:
  - output is valid JSON
  - all mandatory fields are present (ts, level, module, msg)
  - log levels filter correctly
  - extra context fields get merged into the JSON
  - reconfiguring replaces handlers instead of stacking them
"""

import json
import logging
from pathlib import Path

import pytest

from relbuild.logging.logger import ROOT_LOGGER_NAME, configure_logging, get_logger, resolve_log_level


@pytest.fixture(autouse=True)
def _reset_root_logger() -> None:
    """Drop the handlers configure_logging attached so tests stay isolated."""
    yield  # type: ignore[misc]
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


class TestJsonOutput:
    def test_output_is_valid_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO")
        get_logger("relbuild.test.json").info("hello")
        captured = capsys.readouterr()

        parsed = json.loads(captured.out.strip())
        assert isinstance(parsed, dict)

    def test_mandatory_fields_are_present(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO")
        get_logger("relbuild.test.fields").info("test message")
        captured = capsys.readouterr()

        parsed = json.loads(captured.out.strip())
        assert set(parsed) >= {"ts", "level", "module", "msg"}
        assert parsed["level"] == "INFO"
        assert parsed["module"] == "relbuild.test.fields"
        assert parsed["msg"] == "test message"

    def test_extra_fields_are_included(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("DEBUG")
        get_logger("relbuild.test.extra").info(
            "Packaging", extra={"target": "x64-linux.deb", "files": 3, "path": Path("/tmp/out")}
        )
        parsed = json.loads(capsys.readouterr().out.strip())
        assert parsed["target"] == "x64-linux.deb"
        assert parsed["files"] == 3
        assert parsed["path"] == "/tmp/out"

    def test_exception_is_one_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO")
        try:
            raise RuntimeError("tool crashed")
        except RuntimeError:
            get_logger("relbuild.test.exc").error("failed", exc_info=True)

        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 1
        assert "tool crashed" in json.loads(lines[0])["exc"]

    def test_foreign_names_are_nested(self) -> None:
        assert get_logger("tests.something").name == "relbuild.tests.something"
        assert get_logger("relbuild").name == "relbuild"


class TestLogLevelFiltering:
    def test_debug_messages_hidden_at_info_level(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO")
        get_logger("relbuild.test.level_filter").debug("this should not appear")
        assert capsys.readouterr().out.strip() == ""

    def test_debug_messages_shown_at_debug_level(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("debug")
        get_logger("relbuild.test.level_debug").debug("visible")
        assert json.loads(capsys.readouterr().out.strip())["level"] == "DEBUG"

    def test_invalid_level(self) -> None:
        with pytest.raises(ValueError):
            resolve_log_level("VERBOSE")


class TestConfigure:
    def test_reconfigure_does_not_stack_handlers(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO")
        configure_logging("INFO")
        get_logger("relbuild.test.stack").info("once")
        assert len(capsys.readouterr().out.strip().splitlines()) == 1

    def test_log_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "run.jsonl"
        configure_logging("INFO", log_file)
        get_logger("relbuild.test.file").warning("to disk", extra={"release": "2.0.0.1"})
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        entry = json.loads(log_file.read_text(encoding="utf-8").strip())
        assert entry["msg"] == "to disk"
        assert entry["release"] == "2.0.0.1"
