"""
Logging setup for the envelope CLI.

Diagnostics go through the standard logging module to stderr via rich;
regular command output is printed on the console in main.py.
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "ENVELOPE_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"


def resolve_level(verbose: bool = False) -> int:
    """Log level from --verbose or ENVELOPE_LOG_LEVEL, defaulting to WARNING."""
    if verbose:
        return logging.DEBUG
    name = os.getenv(LOG_LEVEL_ENV, DEFAULT_LEVEL).strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        return logging.WARNING
    return level


def configure_logging(verbose: bool = False) -> logging.Logger:
    """
    Attach a rich stderr handler to the `envelope` logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger("envelope")
    logger.setLevel(resolve_level(verbose))

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
