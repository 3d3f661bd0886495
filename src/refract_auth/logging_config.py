"""Logging configuration for refract-auth.

Provides logging setup with configurable levels and consistent
formatting across the package.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from refract_auth.config import Config

# Package logger name
LOGGER_NAME = "refract_auth"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Track if logging has been set up to prevent duplicate handlers
_logging_configured = False


def setup_logging(config: Config) -> None:
    """Configure the package logger.

    Idempotent: repeated calls only update the level.

    Args:
        config: Application configuration containing log_level setting
    """
    global _logging_configured

    log_level = getattr(logging, config.log_level.value)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)

    if _logging_configured:
        for handler in logger.handlers:
            handler.setLevel(log_level)
        return

    logger.handlers.clear()

    # stdout is reserved for command output (tokens, claims)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    logger.addHandler(handler)
    logger.propagate = False

    _logging_configured = True

    logger.debug("Logging configured with level %s", config.log_level.value)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Child logger of the package logger
    """
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)

    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def reset_logging() -> None:
    """Reset logging configuration.

    Used primarily for testing to allow re-initialization.
    """
    global _logging_configured
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = True
    _logging_configured = False
