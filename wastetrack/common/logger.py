"""Logging setup for WasteTrack processes.

The API and the Celery worker each call ``configure_logging`` once at
startup. Modules log through ``logging.getLogger(__name__)`` and inherit
the handlers attached to the ``wastetrack`` logger; audit lines go to the
``wastetrack.audit`` child.
"""

import logging
import logging.handlers
import os
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from wastetrack.core.config import Settings

ROOT_LOGGER = "wastetrack"
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _resolve_level(level: str) -> int:
    name = level.upper()
    if name not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, name)


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
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str = ROOT_LOGGER,
    log_dir: str = "/var/log/wastetrack",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """Attach console and optional rotating file handlers to a logger.

    Calling it again only updates the level; handlers are attached once.

    Args:
        name: Logger name; ``wastetrack`` covers the whole package
        log_dir: Directory for ``<name>.log`` when file logging is on
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        log_format: Record format, ``LOG_FORMAT`` by default
        date_format: Timestamp format, ISO 8601 by default
        file_logging: Write to a size-rotated file
        console_logging: Write to stderr
        max_bytes: Rotation size
        backup_count: Rotated files kept

    Raises:
        ValueError: If the level name is unknown
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or LOG_FORMAT, datefmt=date_format or DATE_FORMAT)
    for handler in _build_handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_logging(settings: "Settings") -> logging.Logger:
    """Configure the package logger from application settings."""
    return setup_logger(
        ROOT_LOGGER,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
