"""Loguru setup shared by the CLI and embedding hosts."""

import sys

from loguru import logger

_PLAIN_FORMAT = "{level.icon} {message}"
_DEBUG_FORMAT = "{time:HH:mm:ss.SSS} {level.icon} {name}:{function} {message}"


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Route card-explorer logs to stderr.

    Args:
        verbose: Emit DEBUG records with timestamps and call sites.
        quiet: Only emit warnings and errors. Ignored when verbose is set.
    """
    logger.remove()
    if verbose:
        logger.add(sys.stderr, level="DEBUG", format=_DEBUG_FORMAT)
    else:
        logger.add(sys.stderr, level="WARNING" if quiet else "INFO", format=_PLAIN_FORMAT)
