"""
Logging helpers shared by all services.
"""
import logging
import sys
from typing import Optional

from textgen.config import settings

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a module logger with a single stream handler attached.

    Args:
        name: Logger name (usually __name__)
        level: Optional level override (defaults to settings.LOG_LEVEL)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)

    logger.setLevel((level or settings.LOG_LEVEL).upper())
    return logger
