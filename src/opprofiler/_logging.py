"""Logging setup built on top of :mod:`loguru`."""

import sys
from pathlib import Path

from beartype import beartype
from loguru import logger


@beartype
def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the global loguru logger for report output.

    Removes loguru's default sink and installs a stderr sink at `level`, plus
    an optional rotating file sink.

    Args:
        level: Minimum log level (string understood by loguru)
        log_file: Optional file path for an additional sink
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format="{message}")
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(log_file, level=level, rotation="10 MB", retention="7 days")
