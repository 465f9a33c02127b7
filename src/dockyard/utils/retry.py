"""Retry and polling helpers.

Two flavours of waiting are used across dockyard:

- :func:`retry_with_backoff` wraps calls that may fail on transient
  connection problems (SSH command execution).
- :func:`poll` and :func:`wait_until` repeatedly evaluate a condition,
  either a bounded number of times at a fixed interval (reachability
  checks) or until a deadline (state transitions).
"""

from __future__ import annotations

import functools
import random
import threading
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from dockyard.utils.logging import get_logger

logger = get_logger("retry")

P = ParamSpec("P")
T = TypeVar("T")


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including first try).
        base_delay: Initial delay in seconds between retries.
        max_delay: Maximum delay in seconds (caps exponential growth).
        exponential_base: Base for exponential calculation (default 2).
        jitter: Add up to 50% random jitter to each delay.
        exceptions: Tuple of exception types to catch and retry.

    Returns:
        Decorated function with retry logic.

    Example:
        >>> @retry_with_backoff(max_attempts=3, exceptions=(SSHConnectionError,))
        ... def run(host, command):
        ...     ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {e}")
                        raise

                    delay = min(
                        base_delay * (exponential_base ** (attempt - 1)),
                        max_delay,
                    )
                    if jitter:
                        delay = delay * (1 + random.random() * 0.5)

                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for "
                        f"{func.__name__}: {e}. Retrying in {delay:.2f}s..."
                    )
                    time.sleep(delay)

            raise RuntimeError("Unexpected retry loop exit")

        return wrapper

    return decorator


def poll(
    condition: Callable[[], bool],
    max_attempts: int,
    interval: float = 1.0,
) -> bool:
    """Evaluate ``condition`` up to ``max_attempts`` times.

    Attempts are separated by a fixed ``interval``; there is no sleep after
    the final attempt.

    Args:
        condition: Callable returning True once the wait is over.
        max_attempts: Maximum number of evaluations.
        interval: Seconds to sleep between evaluations.

    Returns:
        True if the condition was met, False once attempts are exhausted.
    """
    for attempt in range(1, max_attempts + 1):
        if condition():
            return True
        logger.debug(f"Condition not met (attempt {attempt}/{max_attempts})")
        if attempt < max_attempts:
            time.sleep(interval)
    return False


def wait_until(
    condition: Callable[[], bool],
    timeout: float,
    interval: float = 1.0,
    cancel: threading.Event | None = None,
) -> bool:
    """Evaluate ``condition`` until it holds, the deadline passes, or cancel.

    Args:
        condition: Callable returning True once the wait is over.
        timeout: Deadline in seconds, measured from the first evaluation.
        interval: Seconds between evaluations.
        cancel: Optional event; when set the wait stops early.

    Returns:
        True if the condition was met, False on deadline or cancellation.
    """
    deadline = time.monotonic() + timeout
    while True:
        if cancel is not None and cancel.is_set():
            return False
        if condition():
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        if cancel is not None:
            if cancel.wait(min(interval, remaining)):
                return False
        else:
            time.sleep(min(interval, remaining))
