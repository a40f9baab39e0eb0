"""Utility modules for the inference worker."""

from .logging_config import get_logger, setup_logging
from .retry import call_with_retry, should_retry_exception
from .tokens import count_tokens

__all__ = [
    "get_logger",
    "setup_logging",
    "call_with_retry",
    "should_retry_exception",
    "count_tokens",
]
