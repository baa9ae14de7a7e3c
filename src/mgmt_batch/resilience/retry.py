"""
Retry policy with exponential backoff and jitter.

Computes per-unit retry delays: ``base * 2^(attempt-1)`` capped at
``max_delay``, plus jitter, raised to any server Retry-After hint.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum

from mgmt_batch.errors import ConfigurationError


class JitterStrategy(str, Enum):
    """Jitter strategy for retry delays."""

    NONE = "none"
    ADDITIVE = "additive"


def to_seconds(value: float | timedelta, option: str) -> float:
    """Normalize a duration option to seconds.

    Raises:
        ConfigurationError: If the value is not a non-negative number/timedelta
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        raise ConfigurationError(
            f"{option} must be a number of seconds or a timedelta", option=option, value=value
        )
    if seconds < 0:
        raise ConfigurationError(f"{option} must be >= 0", option=option, value=value)
    return seconds


@dataclass
class RetryConfig:
    """Configuration for retry policy.

    Attributes:
        max_attempts: Total attempts per unit, first one included
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap for the exponential part, in seconds
        jitter: Jitter strategy
        exponential_base: Growth factor between attempts
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: JitterStrategy = JitterStrategy.ADDITIVE
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ConfigurationError(
                "max_attempts must be an integer", option="max_attempts", value=self.max_attempts
            )
        if self.max_attempts < 1:
            raise ConfigurationError(
                "max_attempts must be >= 1", option="max_attempts", value=self.max_attempts
            )
        self.base_delay = to_seconds(self.base_delay, "base_delay")
        self.max_delay = to_seconds(self.max_delay, "max_delay")
        if self.max_delay < self.base_delay:
            raise ConfigurationError(
                "max_delay must be >= base_delay", option="max_delay", value=self.max_delay
            )
        self.jitter = JitterStrategy(self.jitter)

    @property
    def delay_ceiling(self) -> float:
        """Upper bound of any computed delay (capped backoff plus full jitter)."""
        return self.max_delay * 2


@dataclass
class RetryPolicy:
    """Retry policy with exponential backoff and jitter.

    Jitter spreads retries of units that were throttled together so they
    do not come back as one burst.

    Example:
        >>> policy = RetryPolicy(RetryConfig(max_attempts=3, base_delay=0.1))
        >>> policy.should_retry(attempts=1)
        True
        >>> policy.backoff(2)
        0.2
    """

    config: RetryConfig = field(default_factory=RetryConfig)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def should_retry(self, attempts: int) -> bool:
        """Check if a unit that has made ``attempts`` attempts gets another."""
        return attempts < self.config.max_attempts

    def backoff(self, attempt: int) -> float:
        """Pre-jitter delay after the given (1-based) failed attempt."""
        exponent = max(attempt - 1, 0)
        delay = self.config.base_delay * (self.config.exponential_base ** exponent)
        return min(delay, self.config.max_delay)

    def calculate_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Calculate the delay before the next attempt.

        Args:
            attempt: Attempt number that just failed (1-based)
            retry_after: Optional retry-after hint from server, in seconds

        Returns:
            Delay in seconds, never above ``config.delay_ceiling``
        """
        delay = self.backoff(attempt)

        if self.config.jitter == JitterStrategy.ADDITIVE and delay > 0:
            delay += self.rng.uniform(0, delay)

        # The larger of computed backoff and server hint wins
        if retry_after is not None and retry_after > delay:
            delay = retry_after

        return min(delay, self.config.delay_ceiling)
