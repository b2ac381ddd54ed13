import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import colorlog

from courseshelf.config import LoggingConfig, config

LOG_FILENAME = "courseshelf.log"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Libraries that only get to speak up about problems
QUIET_LOGGERS = ("asyncio", "aiohttp", "aiosqlite")


def _console_handler(use_color: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if use_color:
        handler.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS
        ))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(settings: LoggingConfig) -> RotatingFileHandler:
    log_dir = Path(settings.log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_dir / LOG_FILENAME,
        maxBytes=settings.max_size_mb * 1024 * 1024,
        backupCount=settings.backup_count,
        encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(settings: Optional[LoggingConfig] = None) -> None:
    """
    Send log records to stdout and to a rotating file in ``log_dir``.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        settings: Logging section to apply; defaults to the process config
    """
    settings = settings or config.logging

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(settings.level.upper())
    root_logger.addHandler(_console_handler(settings.use_color))
    root_logger.addHandler(_file_handler(settings))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # One line per request is only wanted while debugging
    access_level = logging.INFO if root_logger.level <= logging.DEBUG else logging.WARNING
    logging.getLogger("aiohttp.access").setLevel(access_level)
