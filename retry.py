"""
Attempt-count based retry policy shared by the classifier and the table store.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(base_delay: float) -> Callable[[int], float]:
    """Delay doubling from ``base_delay``: 1s, 2s, 4s, ... for a 1s base."""
    return lambda attempt: base_delay * (2 ** (attempt - 1))


def linear_backoff(base_delay: float) -> Callable[[int], float]:
    """Delay growing with the attempt number: base, 2*base, 3*base, ..."""
    return lambda attempt: base_delay * attempt


@dataclass
class RetryPolicy:
    """
    Retry a callable up to ``max_attempts`` times.

    Errors accepted by ``is_transient`` wait ``backoff(attempt)`` seconds
    before the next attempt; any other error is retried immediately. Errors
    rejected by ``retry_on`` are never retried. The last error is re-raised
    once the attempts are used up.
    """

    max_attempts: int
    backoff: Callable[[int], float]
    is_transient: Callable[[BaseException], bool] = lambda exc: True
    retry_on: Callable[[BaseException], bool] = lambda exc: True
    sleep: Callable[[float], None] = field(default=time.sleep)
    name: str = "operation"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def call(self, func: Callable[[], T]) -> T:
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return func()
            except Exception as exc:
                last_error = exc
                if not self.retry_on(exc):
                    raise
                LOGGER.warning(
                    "%s failed (attempt %d/%d): %s",
                    self.name,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                if attempt >= self.max_attempts:
                    break
                if self.is_transient(exc):
                    delay = self.backoff(attempt)
                    LOGGER.info("Retrying %s in %.1fs...", self.name, delay)
                    self.sleep(delay)
        raise last_error
