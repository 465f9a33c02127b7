"""Utility modules for dockyard.

This package contains shared utilities for logging, output formatting,
local paths and retry logic.
"""

from dockyard.utils.logging import configure_logging, get_logger
from dockyard.utils.retry import poll, retry_with_backoff, wait_until

__all__ = [
    "configure_logging",
    "get_logger",
    "poll",
    "retry_with_backoff",
    "wait_until",
]
