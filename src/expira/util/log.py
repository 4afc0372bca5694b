"""Logging setup for the CLI and scheduled jobs.

One format for every module; modules just call logging.getLogger(__name__).
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Libraries that log every connection at INFO/DEBUG
QUIET_LOGGERS = ('aiohttp', 'asyncio')


def _resolve_level(level: Union[int, str]) -> int:
    """Accept LOG_LEVEL names ("debug", "WARNING") or numeric levels."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(log_file: Optional[Path] = None, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Configure the root logger: stdout, plus log_file when given.

    Replaces any handlers already installed, so calling it twice is safe.
    """
    level = _resolve_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level))

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        root_logger.addHandler(_handler(logging.FileHandler(log_file), level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return root_logger
