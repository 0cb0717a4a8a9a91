"""Logging setup for the dirtylabel logger namespace."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "dirtylabel"


def configure_logging(verbose: bool = False) -> None:
    """Route dirtylabel.* records to stderr through rich. verbose adds raw API payloads."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.propagate = False
    logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
