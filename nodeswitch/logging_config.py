"""
Centralized logging configuration for nodeswitch.

Offers:
- Rotating file logs (10MB max, 5 backups) for troubleshooting backend commands
- Console output for user-facing messages (WARNING+ levels)
- Per-module loggers with consistent formatting

Usage:
    from nodeswitch.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Running fnm list")
    logger.error("Install failed", exc_info=True)
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from nodeswitch.config import PERSISTENCE, data_dir

# Global flag to track if logging is initialized
_logging_initialized = False


def default_log_file() -> Path:
    """Location of the log file when setup_logging() is given none."""
    return data_dir() / PERSISTENCE.LOGS_DIR_NAME / PERSISTENCE.LOG_FILE_NAME


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 5,
    console_level: str = "WARNING",
) -> None:
    """
    Configure the root logger with file and console handlers.

    Call once at startup; later calls are ignored so handlers are never
    duplicated.

    Args:
        log_level: Minimum level for file logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file. If None, uses <data dir>/logs/nodeswitch.log
        max_bytes: Maximum size of log file before rotation (default: 10MB)
        backup_count: Number of backup log files to keep (default: 5)
        console_level: Minimum level for console output (default: WARNING)
    """
    global _logging_initialized

    if _logging_initialized:
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, filter in handlers
    root_logger.handlers.clear()

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = logging.Formatter(fmt="%(levelname)s: %(message)s")

    log_file = Path(log_file) if log_file is not None else default_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        filename=log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(getattr(logging, log_level.upper()))
    file_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(file_handler)

    # Console handler - only warnings and errors
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, console_level.upper()))
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    _logging_initialized = True

    root_logger.info(
        f"Logging initialized: file={log_file} (level={log_level}), "
        f"console (level={console_level})"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Initializes logging with defaults if setup_logging() has not run yet.

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Logger instance configured with the application's settings
    """
    if not _logging_initialized:
        setup_logging()

    return logging.getLogger(name)


def reset_logging() -> None:
    """
    Reset logging configuration (primarily for testing).

    Clears all handlers and resets the initialization flag so setup_logging()
    can be called again.
    """
    global _logging_initialized

    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    _logging_initialized = False
