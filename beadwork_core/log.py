"""Structured JSON logging for beadwork.

Writes JSONL to <git dir>/beadwork.log with rotation (1MB, 3 backups).
"""

import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from beadwork_core.constants import LOG_FILE

__all__ = ["setup_logging"]

_MAX_BYTES = 1024 * 1024
_BACKUP_COUNT = 3


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(log_dir: Path, verbose: bool = False) -> logging.Logger:
    """Attach the beadwork log handlers to the package logger.

    Args:
        log_dir: Directory for beadwork.log (the git metadata directory)
        verbose: Also echo records to stderr

    Returns:
        The ``beadwork_core`` logger
    """
    logger = logging.getLogger("beadwork_core")
    target_filename = os.path.abspath(str(Path(log_dir) / LOG_FILE))

    # Re-running setup (e.g. several CLI invocations in one process) must
    # not stack handlers
    for h in logger.handlers[:]:
        if isinstance(h, RotatingFileHandler) and h.baseFilename == target_filename:
            continue
        logger.removeHandler(h)
        h.close()

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        handler = RotatingFileHandler(
            target_filename,
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
        )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)

    if verbose:
        stream = logging.StreamHandler(sys.stderr)
        stream.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        logger.addHandler(stream)

    level = os.environ.get("BW_LOG_LEVEL", "DEBUG" if verbose else "INFO").upper()
    logger.setLevel(getattr(logging, level, logging.INFO))
    return logger
