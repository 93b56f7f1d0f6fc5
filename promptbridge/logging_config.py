"""Centralized logging configuration module"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .config import Settings, get_settings

# Whether already initialized
_initialized = False

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Path] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 3,
    force: bool = False,
) -> None:
    """
    Configure application logging.

    Args:
        level: Root log level name or number
        log_file: Optional file that receives the same records (rotated)
        max_bytes: Rotation threshold for the log file
        backup_count: Rotated files to keep
        force: Reconfigure even if logging was already set up
    """
    global _initialized

    if _initialized and not force:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    logging.getLogger("promptbridge").setLevel(level)

    # Reduce log level for third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _initialized = True


def setup_logging_from_settings(settings: Optional[Settings] = None, force: bool = False) -> None:
    """Configure logging from LOG_LEVEL / LOG_FILE."""
    settings = settings or get_settings()
    setup_logging(level=settings.log_level, log_file=settings.log_file, force=force)
