"""Logging for Spendly.

Every module logs through ``logging.getLogger(__name__)``; those loggers
all sit under the ``spendly`` name, so handlers are attached there once by
``configure_logging``. Approval and audit events go to the console and,
when enabled, to a size-rotated ``spendly.log``.
"""

import logging
import logging.handlers
import os
from typing import List

from spendly.core.config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Library loggers that drown approval events at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "celery", "kombu")


def parse_level(level: str) -> int:
    """Map a level name to its logging constant."""
    level_upper = level.upper()
    if level_upper not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, level_upper)


def _build_handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"), maxBytes=max_bytes, backupCount=backup_count
        ))
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str = "spendly",
    log_dir: str = "/var/log/spendly",
    level: str = "INFO",
    file_logging: bool = True,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and rotating file handlers to a logger.

    Calling it again for the same name only updates the level.

    Raises:
        ValueError: If the level name is not a standard logging level
    """
    logger = logging.getLogger(name)
    logger.setLevel(parse_level(level))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _build_handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(settings: Settings) -> logging.Logger:
    """Configure the package logger from settings.

    In debug mode the package logs at DEBUG and library loggers are left
    alone; otherwise those are held at WARNING.
    """
    level = "DEBUG" if settings.debug else settings.log_level
    logger = setup_logger(
        "spendly",
        log_dir=settings.log_dir,
        level=level,
        file_logging=settings.file_logging,
    )

    if not settings.debug:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger
