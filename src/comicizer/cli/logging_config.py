"""Logging configuration for the comicizer CLI.

- Unified loguru-based logging with consistent formatting
- Intercepts httpx/httpcore standard-library logs
- Console shows INFO+ milestones, DEBUG goes to the log file only
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from click import Context
from loguru import logger

from comicizer import __version__

# Third-party loggers to intercept and route to loguru
INTERCEPTED_LOGGERS = [
    "httpx",
    "httpcore",
    "asyncio",
]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{message}</cyan>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <5} | {module}:{line: <3} | {message}"
)

# INFO messages shown on the console without --verbose
_MILESTONE_KEYWORDS = ("Saved", "Generated", "Complete", "failed")


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.bind(
            name=record.name,
            module=record.module,
            function=record.funcName,
            line=record.lineno,
        ).opt(exception=record.exc_info).log(level, record.getMessage())


def setup_logging(
    verbose: bool,
    log_dir: str | None = None,
    log_level: str = "DEBUG",
    rotation: str = "10 MB",
    retention: str = "7 days",
    quiet: bool = False,
) -> tuple[int | None, Path | None]:
    """Configure loguru handlers.

    Args:
        verbose: Show all INFO messages on the console, not only milestones.
        log_dir: Directory for log files. Supports ~ expansion.
                 Can be overridden by COMICIZER_LOG_DIR env var.
        log_level: Log level for file output.
        rotation: Log file rotation size.
        retention: Log file retention period.
        quiet: Disable console logging entirely.

    Returns:
        Tuple of (console_handler_id, log_file_path).
    """
    logger.remove()

    console_handler_id: int | None = None
    if not quiet:
        console_handler_id = logger.add(
            sys.stderr,
            level="INFO",
            format=CONSOLE_FORMAT,
            filter=lambda record: _should_show_log(record, verbose),
        )

    env_log_dir = os.environ.get("COMICIZER_LOG_DIR")
    if env_log_dir:
        log_dir = env_log_dir

    log_file_path: Path | None = None
    if log_dir:
        log_path = Path(log_dir).expanduser()
        log_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        log_file_path = log_path / f"comicizer_{timestamp}.log"
        logger.add(
            log_file_path,
            level=log_level,
            rotation=rotation,
            retention=retention,
            format=FILE_FORMAT,
        )

    _setup_log_interception()
    return console_handler_id, log_file_path


def _setup_log_interception() -> None:
    """Route third-party standard logging to loguru, WARNING+ only."""
    intercept_handler = InterceptHandler()
    for logger_name in INTERCEPTED_LOGGERS:
        stdlib_logger = logging.getLogger(logger_name)
        stdlib_logger.handlers.clear()
        stdlib_logger.addHandler(intercept_handler)
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(logging.WARNING)


def _is_third_party_log(name: str) -> bool:
    name_lower = name.lower()
    return any(
        name_lower == intercepted or name_lower.startswith(f"{intercepted}.")
        for intercepted in INTERCEPTED_LOGGERS
    )


def _should_show_log(record: Any, verbose: bool) -> bool:
    """Console filter: no DEBUG, and only milestone INFO unless verbose."""
    level = record["level"].name
    if level == "DEBUG":
        return False
    if level in ("WARNING", "ERROR", "CRITICAL"):
        return True

    name = record.get("extra", {}).get("name", "")
    if _is_third_party_log(name):
        return False

    if not verbose and level == "INFO":
        message = record.get("message", "")
        return any(keyword in message for keyword in _MILESTONE_KEYWORDS)
    return True


def print_version(ctx: Context, param: Any, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    from comicizer.cli.console import get_console

    get_console().print(f"comicizer {__version__}")
    ctx.exit(0)
