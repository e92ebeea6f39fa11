"""Retry strategies as pure delay functions.

A strategy answers two questions: *may attempt N be followed by another
one?* and *how long should the caller wait before retry N?* It never
sleeps. The caller owns the sleeping mechanism (usually an injected
:class:`~lockstep.core.timestamps.Clock`), which keeps retry loops
testable without real delays.

Attempts are 1-based throughout: attempt 1 is the first call, and
``next_delay(i)`` is the wait *before* retry ``i`` (i.e. before attempt
``i + 1``).

Example:
    >>> from lockstep.execution.retry import ExponentialBackoff, backoff_schedule
    >>> backoff_schedule(ExponentialBackoff(max_attempts=3, base_delay=1.0))
    [1.0, 2.0]
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    max_attempts: int

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Delay in seconds before retry ``attempt`` (1-based)."""
        ...

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """True if another attempt may follow attempt number ``attempt``."""
        return attempt < self.max_attempts


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with optional jitter.

    Delay before retry ``i`` = ``min(base_delay * multiplier ** (i - 1), max_delay)``

    Attributes:
        max_attempts: Total attempts, including the first call
        base_delay: Delay before the first retry, in seconds
        multiplier: Exponential multiplier (default: 2)
        max_delay: Cap on any single delay
        jitter: Add +/- ``jitter_range`` randomness to each delay
        jitter_range: Jitter as a fraction of the delay (0.0-1.0)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: bool = False
    jitter_range: float = 0.25
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def next_delay(self, attempt: int) -> float:
        delay = min(
            self.base_delay * (self.multiplier ** max(attempt - 1, 0)),
            self.max_delay,
        )
        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay = max(0.0, delay + self.rng.uniform(-jitter_amount, jitter_amount))
        return delay


@dataclass
class JitteredConstantBackoff(RetryStrategy):
    """Fixed delay plus uniform jitter in ``[0, jitter]``.

    Spreads out callers racing for the same resource so they do not retry
    in lockstep with one another.
    """

    max_attempts: int = 3
    delay: float = 0.2
    jitter: float = 0.2
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def next_delay(self, attempt: int) -> float:
        if self.jitter <= 0:
            return self.delay
        return self.delay + self.rng.uniform(0.0, self.jitter)


def backoff_schedule(strategy: RetryStrategy) -> list[float]:
    """Every delay ``strategy`` will request, in order.

    The sum is the worst-case time a retry loop spends sleeping.
    """
    return [strategy.next_delay(i) for i in range(1, strategy.max_attempts)]


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "JitteredConstantBackoff",
    "backoff_schedule",
]
