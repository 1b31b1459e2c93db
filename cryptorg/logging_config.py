"""
Logging configuration for the Cryptorg client and CLI.

The library itself only ever writes to the ``cryptorg`` logger and never
installs handlers.  Applications (the bundled CLI included) call
``setup_logging`` once to get:

  - Console : concise format, INFO by default (``--verbose`` lowers it)
  - File    : DEBUG-level, detailed format with timestamps, auto-rotated

Log files go to ``$CRYPTORG_LOG_DIR`` or ``<project-root>/logs/`` and are
rotated when they exceed 5 MB, keeping the last 5 backups.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "cryptorg"
DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"

_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 5


def setup_logging(
    log_level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure and return the ``cryptorg`` logger.

    Parameters
    ----------
    log_level : int
        Minimum level for the *file* handler.
    console_level : int
        Minimum level for the console handler.
    log_dir : Path, optional
        Directory for ``cryptorg.log``.  Falls back to ``CRYPTORG_LOG_DIR``
        and then to ``logs/`` beside the package.

    Returns
    -------
    logging.Logger
        The configured logger.  Repeated calls return it unchanged.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    log_dir = Path(log_dir or os.getenv("CRYPTORG_LOG_DIR") or DEFAULT_LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.setLevel(min(log_level, console_level))

    log_file = log_dir / "cryptorg.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s.%(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)-8s | %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.debug("Logging initialised, file: %s", log_file)
    return logger
