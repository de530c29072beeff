"""Logging configuration for the study-partner engine."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Optional[int] = None, quiet: bool = False) -> None:
    """Configure root logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). If None, uses settings.
        quiet: If True, only show warnings and errors
    """
    if level is None:
        from .config import get_settings
        level = get_settings().log_level_int

    if quiet:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )
