# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Runtime bootstrap for relbuild.

The one-time setup before any command does real work:
  1. Validate the environment (Python version)
  2. Attach the JSON log handlers

Every CLI command goes through this first.
"""

from pathlib import Path
from typing import Optional

from relbuild.config.schema import GlobalConfig
from relbuild.logging.logger import configure_logging, get_logger
from relbuild.runtime.environment import check_minimum_python, get_system_info


def bootstrap(config: GlobalConfig, log_level: Optional[str] = None) -> None:
    """
    Put the process into a known state.

    Args:
        config: The validated global configuration.
        log_level: Command-line override; wins over config.log_level.
    """
    check_minimum_python()

    log_file = Path(config.log_file) if config.log_file is not None else None
    configure_logging(log_level or config.log_level, log_file=log_file)

    system_info = get_system_info()
    get_logger("relbuild.runtime").debug(
        "relbuild bootstrap complete",
        extra={
            "project": config.project_name,
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
        },
    )
