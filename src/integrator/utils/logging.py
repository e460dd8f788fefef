"""
Logging configuration for the integrator.

Console output goes through Rich (or a plain formatter when requested) and an
optional file handler captures everything in a parseable format.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


class PlainFormatter(logging.Formatter):
    """Console formatter used when Rich output is disabled."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname}: {self.formatTime(record)} - {record.getMessage()}"
        # Errors carry their origin so they can be traced without a debugger
        if record.levelno >= logging.ERROR and record.pathname:
            base = (
                f"{record.levelname}: {self.formatTime(record)} - "
                f"{Path(record.pathname).name}:{record.lineno} - {record.getMessage()}"
            )
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int | None) -> int:
    """
    Parse logging level from string or int.

    Unknown values fall back to INFO.
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        return LEVEL_MAP.get(level.upper(), logging.INFO)
    return logging.INFO


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    file_mode: str = "a",
    console_enabled: bool = True,
    use_rich: bool = True,
    console: Console | None = None,
) -> logging.Logger:
    """
    Setup logging for the integrator.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        log_file: Optional file path to write logs to (default: None, console only)
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite
        console_enabled: Whether to enable console logging (default: True)
        use_rich: Whether to render console logs with RichHandler (default: True)
        console: Optional Rich Console to log through (default: stderr console)

    Returns:
        The configured ``integrator`` logger
    """
    logger = logging.getLogger("integrator")

    # Only clear this logger's handlers, never the root's or a child's
    logger.handlers.clear()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if console_enabled:
        if use_rich:
            logger.addHandler(
                RichHandler(
                    level=level_int,
                    console=console or Console(stderr=True),
                    show_time=True,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                    log_time_format="[%X]",
                    omit_repeated_times=False,
                )
            )
        else:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(level_int)
            console_handler.setFormatter(PlainFormatter())
            logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


def setup_logging_from_config(
    config: dict[str, Any], project_dir: Path | None = None, verbose: bool = False
) -> logging.Logger:
    """
    Setup logging from the ``logging`` section of the integrator config.

    Recognised keys: ``level``, ``file``, ``file_mode``, ``console_enabled``,
    ``console_type`` (``rich`` or ``plain``). ``verbose`` forces DEBUG.
    """
    logging_config = config.get("logging") or {}

    level = logging.DEBUG if verbose else logging_config.get("level", logging.INFO)
    log_file = logging_config.get("file")
    if log_file and project_dir:
        log_file = Path(log_file)
        if not log_file.is_absolute():
            log_file = project_dir / log_file

    console_enabled = logging_config.get("console_enabled", True)
    console_type = logging_config.get("console_type", "rich")

    return setup_logging(
        level=level,
        log_file=log_file,
        file_mode=logging_config.get("file_mode", "a"),
        console_enabled=console_enabled,
        use_rich=console_type == "rich",
    )


def get_logger(name: str = "integrator") -> logging.Logger:
    """
    Get a logger instance under the ``integrator`` hierarchy.

    Child loggers propagate to the ``integrator`` logger so a single
    ``setup_logging`` call configures every module.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
