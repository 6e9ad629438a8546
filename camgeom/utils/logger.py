"""
Logging setup for the camgeom package.

Library code only asks for loggers below the ``camgeom`` namespace and
never attaches handlers; applications call ``setup_logger`` once.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

DEFAULT_LOGGER_NAME = "camgeom"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: Union[str, int] = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure a logger with console and/or file output.

    Existing handlers of the logger are replaced, so calling this twice does
    not duplicate output.

    Args:
        name: Logger name; the package logger by default.
        level: Level name (DEBUG, INFO, WARNING, ERROR) or number.
        log_file: Optional log file; parent directories are created.
        console: Whether to log to stdout.
        format_string: Record format; DEFAULT_FORMAT when None.

    Returns:
        The configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level.upper() if isinstance(level, str) else level)

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt=DATE_FORMAT)

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logger.handlers = []
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Logger inside the package hierarchy.

    Names outside the ``camgeom`` namespace (e.g. a class name) are nested
    under it, so the package logger's level and handlers apply.
    """
    if name != DEFAULT_LOGGER_NAME and not name.startswith(DEFAULT_LOGGER_NAME + "."):
        name = f"{DEFAULT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


class LoggerMixin:
    """Gives a class a ``logger`` named after the class."""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            self._logger = get_logger(self.__class__.__name__)
        return self._logger
