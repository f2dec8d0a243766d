"""Bounded exponential backoff for transient storage failures."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from bucketprobe.errors import ConfigurationError, DefiniteFailure, TransientIOError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry policy for TransientIOError.

    Fields
    ------
    max_attempts : int
        Total attempts, including the first. 1 disables retries.
    base_delay : float
        Delay in seconds before the second attempt; doubles each attempt.
    max_delay : float
        Upper bound for a single delay.
    jitter : float
        Fraction of the delay added or removed at random (0 disables).
    sleep : callable
        Injected for tests; defaults to time.sleep.
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 30.0
    jitter: float = 0.1
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError(f"retry attempts must be at least 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ConfigurationError("retry delays must not be negative")
        if not 0 <= self.jitter <= 1:
            raise ConfigurationError(f"retry jitter must be between 0 and 1, got {self.jitter}")

    def delay(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt"""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter:
            delay += delay * self.jitter * random.uniform(-1, 1)
        return max(0.0, delay)

    def call(self, fn: Callable[[], T], what: str = "operation") -> T:
        """
        Call fn, retrying TransientIOError up to max_attempts times.

        Any other exception propagates immediately. Exhausting the budget
        raises DefiniteFailure chained to the last transient error.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except TransientIOError as e:
                if attempt >= self.max_attempts:
                    raise DefiniteFailure(
                        f"{what} failed after {attempt} attempts: {e}", attempt, e
                    ) from e
                delay = self.delay(attempt)
                logger.info(
                    "%s: transient failure (attempt %d of %d), retrying in %.2fs: %s",
                    what,
                    attempt,
                    self.max_attempts,
                    delay,
                    e,
                )
                self.sleep(delay)
                attempt += 1
