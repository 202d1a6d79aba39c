# src/utils/logger.py
import logging
import sys
from typing import Optional, Union

from core.config import settings

DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Union[int, str, None]) -> int:
    """Turn a level name such as "debug" into its logging constant"""
    if level is None:
        level = settings.LOG_LEVEL
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str,
    level: Union[int, str, None] = None,
    format_string: Optional[str] = None,
    datefmt: Optional[str] = None,
) -> logging.Logger:
    """
    Set up a named logger writing to stdout.

    Args:
        name: Logger name, upper-case by convention (e.g. "COMMENT_SERVICE")
        level: Logging level; defaults to settings.LOG_LEVEL
        format_string: Custom format string for log messages
        datefmt: Custom date format string

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Calling twice for the same name must not stack handlers
    if logger.handlers:
        return logger

    resolved_level = _resolve_level(level)
    logger.setLevel(resolved_level)

    formatter = logging.Formatter(
        format_string or DEFAULT_FORMAT, datefmt=datefmt or DEFAULT_DATEFMT
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger
