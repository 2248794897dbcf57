# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Structured JSON logging for relbuild.

A release run touches compilers, packagers, signers and git, and the log is
the only record of what happened to the source tree. Every entry is therefore
a single JSON line with a timestamp, level and source module, plus whatever
structured context the caller attached through `extra`.

How this works:
  - Every module calls `get_logger(__name__)` once at import time. Those
    loggers carry no handlers of their own; they propagate to the shared
    "relbuild" logger.
  - `configure_logging` (called once by the CLI) attaches the JSON handlers to
    the "relbuild" logger: stdout always, plus an optional file.
  - Calling `configure_logging` again replaces the handlers instead of
    stacking them, so tests and repeated CLI invocations stay clean.

The JSON structure looks like:
  {"ts": "2026-...", "level": "INFO", "module": "relbuild.release.pipeline.pipeline",
   "msg": "Stage complete", "stage": "compiled"}
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "relbuild"

# LogRecord attributes that are plumbing, not caller context.
_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "relativeCreated",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "pathname",
        "filename",
        "module",
        "levelno",
        "levelname",
        "processName",
        "process",
        "threadName",
        "thread",
        "message",
        "msecs",
        "taskName",
    }
)


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Mandatory fields:
      ts    : ISO 8601 UTC timestamp
      level : log level name
      module: the logger name (usually the Python module path)
      msg   : the formatted message string

    Anything passed through `extra` is merged in as additional fields.
    Exceptions are rendered into an "exc" field so a failed external tool
    still produces exactly one line per record.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.now(tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                entry[key] = value

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def resolve_log_level(level_name: str) -> int:
    """Turn a level name string into the corresponding logging constant."""
    upper = level_name.upper()
    if upper not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level '{level_name}'. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    return getattr(logging, upper)


def configure_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Attach JSON handlers to the shared "relbuild" logger.

    Args:
        log_level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
        log_file: Optional path to a log file. If provided, logs go to both
                  stdout and the file.

    Returns:
        The configured root "relbuild" logger.
    """
    level = resolve_log_level(log_level)
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = JsonFormatter()

    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.setLevel(level)
    stdout_handler.setFormatter(formatter)
    root.addHandler(stdout_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Don't propagate to the interpreter root logger, we handle all output.
    root.propagate = False

    return root


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger that feeds the shared "relbuild" handlers.

    Names outside the "relbuild" namespace (tests, scripts) are nested under
    it so they still end up in the JSON stream.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
