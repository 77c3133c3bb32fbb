"""Console output and logging configuration.

Provides Rich-based logging setup:
    - setup_logging(): Configure the "opqueue" logger with a Rich handler on stderr

Modules log through logging.getLogger(__name__) and inherit this handler.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

from opqueue.core.config import get_config

_stderr_console = Console(stderr=True)


def _normalize_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def setup_logging(level: str | int | None = None, verbose: bool = False) -> logging.Logger:
    """Configure logging with a Rich handler and return the package logger.

    Args:
        level: Log level name or number (default: config.log_level)
        verbose: Force DEBUG regardless of level
    """
    if level is None:
        level = get_config().log_level
    numeric_level = logging.DEBUG if verbose else _normalize_level(level)

    handler = RichHandler(
        console=_stderr_console,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler.setLevel(numeric_level)

    logger = logging.getLogger("opqueue")
    logger.handlers.clear()
    logger.setLevel(numeric_level)
    logger.addHandler(handler)
    logger.propagate = False

    return logger
