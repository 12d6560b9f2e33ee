"""Retry policy calculator.

Pure functions mapping an attempt number and a strategy to a delay. They
never block and have no side effects, so the delivery engine uses them for
scheduling and the monitor uses them for display.

    FIXED        base
    LINEAR       base * n
    EXPONENTIAL  base * 2 ** (n - 1)
"""

from __future__ import annotations

import random
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookwire.models import RetryPolicy


class RetryStrategy(str, Enum):
    """Spacing between automatic delivery attempts."""

    FIXED = "FIXED"
    LINEAR = "LINEAR"
    EXPONENTIAL = "EXPONENTIAL"


def delay(attempt_number: int, strategy: RetryStrategy | str, base_delay_seconds: int) -> int:
    """Seconds to wait after the given failed attempt.

    Args:
        attempt_number: 1-based number of the attempt that just failed.
        strategy: Backoff strategy.
        base_delay_seconds: Base delay of the policy.

    Returns:
        Delay in seconds.

    Raises:
        ValueError: If attempt_number < 1 or base_delay_seconds < 0.

    Examples:
        >>> delay(3, RetryStrategy.EXPONENTIAL, 60)
        240
        >>> delay(3, RetryStrategy.LINEAR, 60)
        180
        >>> delay(3, RetryStrategy.FIXED, 60)
        60
    """
    if attempt_number < 1:
        raise ValueError(f"attempt_number must be >= 1, got {attempt_number}")
    if base_delay_seconds < 0:
        raise ValueError(f"base_delay_seconds must be >= 0, got {base_delay_seconds}")

    strategy = RetryStrategy(strategy)
    if strategy is RetryStrategy.FIXED:
        return base_delay_seconds
    if strategy is RetryStrategy.LINEAR:
        return base_delay_seconds * attempt_number
    return base_delay_seconds * 2 ** (attempt_number - 1)


def apply_jitter(seconds: float, ratio: float, rng: random.Random | None = None) -> float:
    """Spread a delay uniformly over ``seconds * (1 +/- ratio)``.

    Retries against the same downstream host otherwise line up exactly.
    A ratio of 0 returns the input unchanged.
    """
    if ratio <= 0 or seconds <= 0:
        return seconds
    ratio = min(ratio, 1.0)
    source = rng or random
    return max(0.0, seconds * (1 + source.uniform(-ratio, ratio)))


def schedule(policy: RetryPolicy) -> list[int]:
    """Delays between consecutive automatic attempts of a policy.

    A policy with max_retries=N makes N attempts, so there are N-1 waits.
    """
    return [
        delay(n, policy.strategy, policy.base_delay_seconds) for n in range(1, policy.max_retries)
    ]


__all__ = ["RetryStrategy", "apply_jitter", "delay", "schedule"]
