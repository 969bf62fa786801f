"""Loguru sink configuration for the CLI."""

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger


def configure_logging(level: str = "WARNING", log_dir: Optional[Union[str, Path]] = None) -> None:
    """
    Route loguru to stderr at ``level`` and, optionally, to a daily log file.

    Console output meant for the user is printed separately, so stderr only
    carries warnings by default.
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format="<level>{level: <8}</level> | {message}")
    if log_dir:
        logger.add(
            str(Path(log_dir) / "create_datadao_{time:YYYY-MM-DD}.log"),
            rotation="1 day",
            retention="7 days",
            level="DEBUG",
        )
