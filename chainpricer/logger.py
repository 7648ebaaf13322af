"""
Centralised Loguru configuration.

Two sinks:
  - **stderr**: INFO and above, compact and coloured.
  - **file**: DEBUG and above with source location, rotated by size.

Call ``setup_logger()`` once at application startup. Library modules only
ever do ``from loguru import logger`` and never add sinks themselves.
"""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from . import config


def setup_logger(
    log_dir: Optional[Union[str, Path]] = None,
    console_level: str = None,
    file_level: str = None,
):
    """Configure and return the global Loguru logger.

    Parameters
    ----------
    log_dir : directory for rotated log files (default: config.LOG_DIR).
              Pass an empty string to disable the file sink.
    console_level : stderr threshold (default: config.LOG_LEVEL_CONSOLE)
    file_level : file threshold (default: config.LOG_LEVEL_FILE)
    """
    if log_dir is None:
        log_dir = config.LOG_DIR
    if console_level is None:
        console_level = config.LOG_LEVEL_CONSOLE
    if file_level is None:
        file_level = config.LOG_LEVEL_FILE

    logger.remove()

    logger.add(
        sys.stderr,
        level=console_level,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "chainpricer_{time:YYYY-MM-DD}.log",
            level=file_level,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                "{name}:{function}:{line} - {message}"
            ),
            enqueue=True,
            encoding="utf-8",
        )

    return logger
