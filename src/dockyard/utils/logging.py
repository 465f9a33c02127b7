"""Logging configuration for dockyard.

Verbosity is driven by the CLI:
- No flag: WARNING only
- -v: INFO level
- -vv: DEBUG level
- -vvv: DEBUG level plus paramiko and httpx wire logging

Every module logs through a child of the ``dockyard`` logger obtained
with :func:`get_logger`.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that only speak up at -vvv
WIRE_LOGGERS = ("paramiko", "httpx", "httpcore")

_loggers: dict[str, logging.Logger] = {}


def get_log_level(verbosity: int) -> int:
    """Convert verbosity count to log level.

    Args:
        verbosity: Number of -v flags (0-3).

    Returns:
        Logging level constant.
    """
    levels = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG,
        3: logging.DEBUG,
    }
    return levels.get(min(verbosity, 3), logging.WARNING)


def configure_logging(
    verbosity: int = 0,
    log_file: str | Path | None = None,
    log_level: str | None = None,
) -> None:
    """Configure logging for dockyard.

    The console handler writes to stderr at the level selected by
    ``verbosity`` (or ``log_level`` when given); the optional file handler
    always records DEBUG.

    Args:
        verbosity: Number of -v flags from CLI (0-3).
        log_file: Optional path to log file.
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR).

    Example:
        >>> configure_logging(verbosity=2)
        >>> configure_logging(log_file="~/.dockyard/logs/dockyard.log")
    """
    if log_level:
        level = getattr(logging, log_level.upper(), logging.WARNING)
    else:
        level = get_log_level(verbosity)

    root_logger = logging.getLogger("dockyard")
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in WIRE_LOGGERS:
        wire_logger = logging.getLogger(name)
        if verbosity >= 3:
            wire_logger.setLevel(logging.DEBUG)
            wire_logger.addHandler(console_handler)
        else:
            wire_logger.setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module.

    Args:
        name: Name of the module (e.g., 'ssh', 'drivers.rivet').

    Returns:
        Logger under the 'dockyard' namespace.

    Example:
        >>> logger = get_logger("host")
        >>> logger.info("Machine created")
    """
    full_name = name if name.startswith("dockyard.") else f"dockyard.{name}"

    if full_name not in _loggers:
        _loggers[full_name] = logging.getLogger(full_name)

    return _loggers[full_name]
