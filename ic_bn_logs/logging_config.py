"""
Logging configuration for ic-bn-logs

Diagnostics go to stderr so that stdout carries nothing but log lines
received from the boundary nodes.
"""

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
VERBOSE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

NOISY_LOGGERS = [
    "websockets",
    "websockets.client",
    "httpx",
    "httpcore",
    "asyncio",
]


def configure_logging(
    level: Union[str, int] = "INFO",
    format_string: Optional[str] = None,
    suppress_noisy: bool = True,
    verbose: bool = False
) -> None:
    """
    Configure logging for the client

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string, uses default if None
        suppress_noisy: Whether to quiet third-party protocol loggers
        verbose: If True, include file names and line numbers
    """
    if isinstance(level, str):
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = level

    if format_string is None:
        format_string = VERBOSE_FORMAT if verbose else DEFAULT_FORMAT

    logging.basicConfig(
        level=log_level,
        format=format_string,
        stream=sys.stderr,
        force=True
    )

    if suppress_noisy:
        suppress_noisy_logging()


def suppress_noisy_logging() -> None:
    """Quiet per-frame chatter from the websocket and HTTP libraries"""
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def configure_cli_logging(verbose: bool = False, level: str = "INFO") -> None:
    """
    Configure logging for the command line client

    Args:
        verbose: If True, log at DEBUG with source locations
        level: Level used when not verbose
    """
    if verbose:
        configure_logging(level="DEBUG", verbose=True, suppress_noisy=True)
    else:
        configure_logging(level=level, suppress_noisy=True)
