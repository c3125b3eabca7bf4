from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "pexray"


def setup_logging(level: str = "WARNING") -> logging.Logger:
    """
    Attach a Rich stderr handler to the package logger. Library code only
    creates loggers; handlers are installed here by the CLI.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    for h in list(logger.handlers):
        if isinstance(h, RichHandler):
            logger.removeHandler(h)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=False,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
