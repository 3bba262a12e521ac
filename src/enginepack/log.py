"""Logging setup for enginepack runs."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(message)s"


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """Configure the root logger for a run.

    Args:
        log_file: Run log file (rotating, 10MB x 3). None disables file logging.
        verbose: Show DEBUG messages on the console
    """
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Replace handlers from a previous setup in the same process
    for handler in list(logger.handlers):
        if getattr(handler, "_enginepack", False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler._enginepack = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler._enginepack = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)
