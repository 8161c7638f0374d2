"""Logging for the walkmap CLI.

Messages go to stderr so that rendered HTML and JSON on stdout stay clean.
A DEBUG-level log file under ``<data-dir>/logs`` can be added on request.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from walkmap.config import Config

logger = logging.getLogger("walkmap")

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _log_file_path(config: Config | None, log_dir: Path | None) -> Path:
    if log_dir is None:
        log_dir = config.data.directory / "logs" if config is not None else Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    # sortable by name
    stamp = datetime.now().strftime("%Y%m%dT%H%M%S")
    return log_dir / f"walkmap-{stamp}.log"


def setup_logging(
    config: Config | None = None,
    log_dir: Path | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    quiet: bool = False,
    log_to_file: bool = False,
) -> logging.Logger:
    """Attach walkmap's handlers, replacing any from an earlier call.

    Args:
        config: Used to place the log file under the data directory.
        log_dir: Log file directory, overriding the one from ``config``.
        console_level: Threshold for stderr.
        file_level: Threshold for the log file.
        quiet: Raise the stderr threshold to WARNING.
        log_to_file: Also write a timestamped log file.

    Returns:
        The ``walkmap`` logger.
    """
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING if quiet else console_level)
    stderr_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(stderr_handler)

    if log_to_file:
        path = _log_file_path(config, log_dir)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
        logger.addHandler(file_handler)
        logger.debug("Writing log to %s", path)

    return logger
