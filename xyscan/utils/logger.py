"""
Logger Utility for xyscan
Provides consistent logging configuration for the CLI and embedding hosts
"""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
SCANNER_OUTPUT_LOGGER = "xyscan.scanner.output"


def setup_logger(verbosity: int = 1,
                 log_file: Optional[str] = None,
                 logger_name: str = "xyscan",
                 console: Optional[Console] = None) -> logging.Logger:
    """Set up logger with rich console output and an optional detail file.

    verbosity: 0 = warnings only, 1 = info, 2 = debug.
    """
    logger = logging.getLogger(logger_name)
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logger.setLevel(logging.DEBUG if log_file else level)

    # Clear existing handlers (keeps repeated CLI invocations in one process sane)
    logger.handlers.clear()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=(verbosity >= 2),
        rich_tracebacks=True,
        markup=False,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    # Suppress overly verbose third-party loggers unless in debug
    for name in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING if verbosity < 2 else logging.DEBUG)

    return logger


def log_banner(logger: logging.Logger, title: str) -> None:
    """Write the section banner used around long-running operations."""
    logger.info("=" * 50)
    logger.info(f"===  {title}")
