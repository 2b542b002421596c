"""Retry utilities for plugin execution.

Provides the exponential backoff schedule used by
``PluginExecutor.execute_with_retry`` and a sleep that can be interrupted
through a ``CancelToken``.

Usage:
    from plugin_host.retry_utils import calculate_backoff, interruptible_sleep

    delay = calculate_backoff(attempt, base_delay=1.0)   # 1s, 2s, 4s, ...
    interruptible_sleep(delay, cancel_token=token)       # raises if cancelled
"""

import time
from typing import Optional

from .plugins.cancel import CancelToken, CancelledException


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
) -> float:
    """Calculate the backoff delay after a failed attempt.

    Args:
        attempt: Attempt number that just failed (0-indexed).
        base_delay: Delay after the first failure, in seconds.
        max_delay: Optional upper bound for the delay.

    Returns:
        ``base_delay * 2 ** attempt`` seconds, capped at max_delay if given.
    """
    delay = base_delay * (2 ** attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


def interruptible_sleep(
    seconds: float,
    cancel_token: Optional[CancelToken] = None,
) -> bool:
    """Sleep for the given duration unless the token is cancelled first.

    Args:
        seconds: Duration to sleep.
        cancel_token: Optional token; cancellation ends the sleep early.

    Returns:
        True when the full duration elapsed.

    Raises:
        CancelledException: If the token is (or becomes) cancelled.
    """
    if cancel_token is None:
        time.sleep(seconds)
        return True

    cancel_token.raise_if_cancelled()
    if cancel_token.wait(timeout=seconds):
        raise CancelledException("Sleep interrupted by cancellation")
    return True


__all__ = [
    'calculate_backoff',
    'interruptible_sleep',
]
