"""Logging setup for the restorepoint command line.

Library modules only call logging.getLogger(__name__). The CLI installs a
rich handler on the package logger so warnings (skipped files, failed
changelog writes) show up on stderr without cluttering normal output.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "restorepoint"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Attach a stderr RichHandler to the package logger (idempotent).

    Args:
        verbose: Log at DEBUG instead of WARNING
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=verbose,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    return logger
