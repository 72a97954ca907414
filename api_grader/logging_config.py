"""Logging configuration for api-grader."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "api_grader"


def setup_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Route package logs through a Rich handler on stderr.

    ``quiet`` wins over ``verbose``: errors only. The default level is
    WARNING so cycle breaks and config problems are visible.
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        show_time=verbose,
        show_path=verbose,
    )
    logging.basicConfig(level=level, format="%(message)s", datefmt="[%X]", handlers=[handler])

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    return logger
