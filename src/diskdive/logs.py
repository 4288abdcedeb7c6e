"""Logging setup for diskdive."""

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger("diskdive")


def setup_logging(
    verbose: bool = False,
    log_file: Optional[Path] = None,
    console: bool = True,
) -> None:
    """
    Configure the diskdive logger.

    The interactive explorer owns the terminal, so it passes console=False and
    only logs to a file when one is requested.

    Args:
        verbose: If True, log at DEBUG level. Otherwise INFO.
        log_file: Optional path to append log records to
        console: Whether to log to stderr through rich
    """
    level = logging.DEBUG if verbose else logging.INFO

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if console:
        logger.addHandler(
            RichHandler(
                console=Console(stderr=True),
                show_path=False,
                rich_tracebacks=True,
            )
        )

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to open log file %s: %s", log_file, e)
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - [%(levelname)s] - %(name)s - %(message)s")
            )
            logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.setLevel(level)
    logger.propagate = False
    logger.debug("Logging configured (verbose=%s, log_file=%s)", verbose, log_file)
