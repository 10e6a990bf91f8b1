"""Centralized logging setup for the document pipeline.

One stream handler on the root logger (stdout by default), a shared format,
and quieter defaults for the HTTP and imaging libraries the engines pull in.
"""

import logging
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS: tuple[str, ...] = ("openai", "httpx", "httpcore", "PIL")


def setup_logging(
    level: str = "INFO",
    quiet: tuple[str, ...] = NOISY_LOGGERS,
    stream: TextIO | None = None,
) -> None:
    """Configure the root logger once.

    Args:
        level: Logging level name. Unknown names fall back to INFO.
        quiet: Third-party logger names capped at WARNING.
        stream: Handler destination. Defaults to stdout.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in quiet:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Return the named logger, normally ``__name__`` of the caller."""
    return logging.getLogger(name)
