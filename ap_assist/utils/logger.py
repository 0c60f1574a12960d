"""
Logging Configuration Module.

Central logging setup for the AP Assist services. Everything logs under
the ``ap_assist`` namespace; console output is colored with colorama and
an optional rotating log file can be enabled in settings.

Documents of one batch group are processed concurrently, so every record
is stamped with the name of the asyncio task that emitted it (``%(task)s``
in the format string). The batch scheduler names item tasks after the
document, which keeps interleaved log lines attributable.

Usage:
    from ap_assist.utils.logger import setup_logger_from_config, get_logger

    setup_logger_from_config()          # once, in main.py
    logger = get_logger(__name__)       # in every module
    logger.info("Polling mailbox...")
"""

import asyncio
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

import colorama
from colorama import Fore, Style

colorama.init()

LOGGER_NAMESPACE = "ap_assist"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(task)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
NO_TASK = "main"


class TaskContextFilter(logging.Filter):
    """
    Adds ``record.task``: the current asyncio task name, or "main"
    outside the event loop.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            task = asyncio.current_task()
        except RuntimeError:
            task = None
        record.task = task.get_name() if task is not None else NO_TASK
        return True


class ColoredFormatter(logging.Formatter):
    """
    Console formatter coloring the level name.

    Colors:
        - DEBUG: Cyan
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Red (bold)
    """

    COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno)
        if not color:
            return super().format(record)

        # Pad before coloring so %(levelname)-8s still lines up
        original = record.levelname
        record.levelname = f"{color}{original:<8}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def parse_level(level: Union[str, int, None]) -> int:
    """
    Resolve a level name ("debug", "INFO") or number to a logging level.

    Raises:
        ValueError: For an unknown level name.
    """
    if level is None or level == "":
        return logging.INFO
    if isinstance(level, int):
        return level

    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown logging level: {level!r}")
    return resolved


def setup_logger(
    level: Union[str, int] = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 10485760,  # 10 MB
    backup_count: int = 5,
    colorize: bool = True
) -> logging.Logger:
    """
    Configure the ``ap_assist`` logger.

    Calling it again replaces the previous handlers, so ``--debug`` can
    re-run it after the configuration is loaded.

    Args:
        level: Logging level name or number.
        log_format: Record format; may use ``%(task)s``.
        date_format: Timestamp format.
        log_file: Path of a rotating log file, or None for console only.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        colorize: Color the console level names.

    Returns:
        The configured namespace logger.

    Example:
        >>> setup_logger(level="DEBUG", log_file="logs/ap_assist.log")
    """
    numeric_level = parse_level(level)
    log_format = log_format or DEFAULT_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    app_logger = logging.getLogger(LOGGER_NAMESPACE)
    app_logger.setLevel(numeric_level)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    task_filter = TaskContextFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    formatter_class = ColoredFormatter if colorize else logging.Formatter
    console_handler.setFormatter(formatter_class(log_format, datefmt=date_format))
    console_handler.addFilter(task_filter)
    app_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        file_handler.addFilter(task_filter)
        app_logger.addHandler(file_handler)

    # Library loggers (anthropic, aiohttp) stay on the root logger
    app_logger.propagate = False

    app_logger.debug(
        f"Logging initialized (level={logging.getLevelName(numeric_level)}, "
        f"file={log_file or 'disabled'})"
    )
    return app_logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module, placed under the ``ap_assist`` namespace.

    Example:
        >>> get_logger("main").name
        'ap_assist.main'
    """
    if name == LOGGER_NAMESPACE or name.startswith(LOGGER_NAMESPACE + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def setup_logger_from_config() -> logging.Logger:
    """Initialize logging from the ``logging.*`` settings."""
    from config import get_config

    log_file = None
    if get_config("logging.file.enabled", False):
        log_file = get_config("logging.file.path")

    return setup_logger(
        level=get_config("logging.level", "INFO"),
        log_format=get_config("logging.format"),
        date_format=get_config("logging.date_format"),
        log_file=log_file,
        max_bytes=get_config("logging.file.max_bytes", 10485760),
        backup_count=get_config("logging.file.backup_count", 5),
        colorize=get_config("logging.console.colorize", True)
    )
