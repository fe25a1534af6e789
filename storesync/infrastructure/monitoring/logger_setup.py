"""Logging for storesync, driven by `ResilienceSettings`.

The CLI logs to stdout and, when `logging.file` is configured, to a
size-rotated file. Client libraries under the Firestore backend are
chatty at INFO, so they are held at WARNING unless storesync itself
runs at DEBUG.
"""

import logging
import logging.handlers
import sys
from typing import Iterable, Optional

from storesync.infrastructure.config.settings import ResilienceSettings

NOISY_LIBRARY_LOGGERS = ("google", "google.auth", "grpc", "urllib3")


def parse_log_level(name: Optional[str], default: int = logging.INFO) -> int:
    """Maps 'debug' / 'INFO' / ... to a logging level, falling back to `default`."""
    if not name:
        return default
    level = getattr(logging, str(name).upper(), None)
    return level if isinstance(level, int) else default


def _file_handler(settings: ResilienceSettings, formatter: logging.Formatter) -> Optional[logging.Handler]:
    try:
        handler = logging.handlers.RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding='utf-8',
        )
    except OSError as e:
        logging.error(f"Failed to set up file logging to {settings.log_file}: {e}", exc_info=True)
        return None
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    settings: ResilienceSettings,
    default_level: int = logging.INFO,
    quiet_loggers: Iterable[str] = NOISY_LIBRARY_LOGGERS,
) -> int:
    """Replaces the root logger's handlers according to `settings`.

    Args:
        settings: Supplies log_level, log_format, log_file and the rotation limits.
        default_level: Used when `settings.log_level` is not a level name.
        quiet_loggers: Library loggers held at WARNING unless running at DEBUG.

    Returns:
        The effective level.
    """
    level = parse_log_level(settings.log_level, default_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(settings.log_format)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.log_file:
        file_handler = _file_handler(settings, formatter)
        if file_handler is not None:
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {settings.log_file}")

    library_level = logging.DEBUG if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(library_level)

    logging.info(f"Logging configured. Level={logging.getLevelName(level)}")
    return level
