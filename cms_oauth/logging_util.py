"""
Logging setup for the OAuth server: console output plus an optional rotating file.

Usage:

    from cms_oauth.logging_util import configure_logging, get_logger

    configure_logging(level=settings.LOG_LEVEL, log_file="oauth.log")

    logger = get_logger(__name__)
    logger.info("Auth server listening")

LOG_LEVEL values from deployments that used the Node tooling (``fatal``,
``warn``, ``trace``) are accepted and mapped onto the nearest stdlib level.
"""

import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, Union


_LEVEL_MAP = {
    "FATAL": logging.CRITICAL,
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}

# Loggers of the HTTP stack that would otherwise duplicate our access log
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def _to_level(level: Union[int, str]) -> int:
    """Convert string/int level to a logging level int."""
    if isinstance(level, int):
        return level
    return _LEVEL_MAP.get(level.upper(), logging.INFO)


def configure_logging(
    *,
    level: Union[int, str] = "INFO",
    console_level: Optional[Union[int, str]] = None,
    file_level: Optional[Union[int, str]] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
    clear_existing: bool = True,
) -> None:
    """
    Configure application-wide logging.

    Parameters
    ----------
    level:
        Root logger level. Can be int or string (e.g. "debug", "WARN").
    console_level:
        Specific level for console. Defaults to `level` if not provided.
    file_level:
        Specific level for file handler. Defaults to `level` if not provided.
    log_file:
        If provided, logs will also go to a rotating file.
    max_bytes:
        Maximum size (in bytes) of each log file before rotation.
    backup_count:
        How many rotated log files to keep.
    fmt:
        Log message format.
    datefmt:
        Datetime format in logs.
    clear_existing:
        If True (default), removes existing handlers from the root logger
        before adding new ones, so repeated calls do not duplicate output.
    """
    root = logging.getLogger()
    root.setLevel(_to_level(level))

    if clear_existing:
        for h in list(root.handlers):
            root.removeHandler(h)

    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(_to_level(console_level or level))
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            filename=log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(_to_level(file_level or level))
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger for a module or component.

    Usage:
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)
