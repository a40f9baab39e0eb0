"""
Logging configuration for the inference worker.

Every module obtains its logger through ``get_logger(__name__)`` so that a
single call to ``setup_logging`` controls the whole package.

Usage:
    from inference_worker.utils.logging_config import get_logger, setup_logging

    setup_logging("INFO")
    logger = get_logger(__name__)
    logger.info("[Worker] Ready")
"""

import logging
import os
import sys
from typing import Optional, TextIO

PACKAGE_LOGGER_NAME = "inference_worker"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger; names outside the package are nested under it."""
    if name != PACKAGE_LOGGER_NAME and not name.startswith(PACKAGE_LOGGER_NAME + "."):
        name = f"{PACKAGE_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(
    level: Optional[str] = None,
    stream: Optional[TextIO] = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """
    Configure the package logger.

    Safe to call more than once; the handler installed by a previous call
    is replaced rather than duplicated.

    Args:
        level: Log level name. Falls back to ``INFERENCE_WORKER_LOG_LEVEL``
            and then ``INFO``.
        stream: Destination stream. Defaults to ``sys.stderr`` so that the
            stdio transport keeps stdout for protocol messages only.
        fmt: ``logging.Formatter`` format string.

    Returns:
        The configured package logger.
    """
    level_name = (level or os.getenv("INFERENCE_WORKER_LOG_LEVEL", "INFO")).upper()
    logger = logging.getLogger(PACKAGE_LOGGER_NAME)

    for handler in list(logger.handlers):
        if getattr(handler, "_inference_worker_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    handler._inference_worker_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level_name)
    logger.propagate = False
    return logger
