"""
Bounded polling waits.

Every wait in a run goes through here, whether the condition is text on
the remote console or a file landing on disk.
"""

import os
import time
from typing import Callable

from .logger import get_logger


DEFAULT_POLL_INTERVAL = 1.0


class TimedOut(Exception):
    """Raised when a wait exceeds its allotted time."""

    def __init__(self, description: str, timeout: float):
        super().__init__(f"Timed out after {timeout:g}s waiting for {description}")
        self.description = description
        self.timeout = timeout


def poll(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float = DEFAULT_POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Evaluate a predicate until it holds or the timeout elapses.

    The predicate is always evaluated at least once, so a zero timeout
    is a single check.

    Args:
        predicate: Condition to poll
        timeout: Seconds to keep polling
        interval: Seconds between evaluations
        clock: Monotonic time source
        sleep: Sleep function

    Returns:
        True if the predicate held before the deadline, False otherwise
    """
    deadline = clock() + timeout

    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    description: str = "condition",
    interval: float = DEFAULT_POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Block until a predicate holds.

    Raises:
        TimedOut: If the predicate did not hold within the timeout
    """
    get_logger().debug(f"Waiting up to {timeout:g}s for {description}")
    if not poll(predicate, timeout, interval, clock=clock, sleep=sleep):
        raise TimedOut(description, timeout)


def wait_for_file(
    path: str,
    timeout: float,
    interval: float = DEFAULT_POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Block until a file exists on disk.

    Raises:
        TimedOut: If the file did not appear within the timeout
    """
    wait_until(
        lambda: os.path.exists(path),
        timeout,
        description=f"file {path}",
        interval=interval,
        clock=clock,
        sleep=sleep,
    )
