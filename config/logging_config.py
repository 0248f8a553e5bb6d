"""
Centralized logging configuration.
Every module logs through get_logger(__name__).
"""
import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from .constants import (
    LOG_LEVEL, LOG_FORMAT, LOG_FILE,
    LOG_MAX_SIZE_MB, LOG_BACKUP_COUNT
)

ROOT_LOGGER_NAME = 'batch_engine'


def setup_logger(
    name: Optional[str] = None,
    level: str = LOG_LEVEL,
    log_file: Optional[str] = LOG_FILE,
) -> logging.Logger:
    """
    Get or create a configured logger.

    Usage:
        from config.logging_config import setup_logger
        logger = setup_logger(__name__)
        logger.info("Message here")

    Args:
        name: Logger name. If None, uses 'batch_engine'.
        level: Level name for the logger itself.
        log_file: Rotating log file path. Falsy disables the file handler.

    Returns:
        Configured logging.Logger instance.
    """
    logger = logging.getLogger(name or ROOT_LOGGER_NAME)

    # Module loggers under the package propagate to its handlers
    if logger.name.startswith(ROOT_LOGGER_NAME + "."):
        setup_logger(ROOT_LOGGER_NAME, level, log_file)
        return logger

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Console handler - INFO level
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console)

    if log_file:
        # File handler with rotation - DEBUG level
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=LOG_MAX_SIZE_MB * 1024 * 1024,
            backupCount=LOG_BACKUP_COUNT
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Alias for setup_logger for convenience.

    Usage:
        from config.logging_config import get_logger
        logger = get_logger(__name__)
    """
    return setup_logger(name)


def set_level(level: str):
    """Apply a level name to every logger created through setup_logger."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    for existing in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(existing, logging.Logger) and existing.handlers:
            existing.setLevel(numeric)


# Singleton logger for quick imports
# Usage: from config.logging_config import logger
logger = setup_logger(ROOT_LOGGER_NAME)
