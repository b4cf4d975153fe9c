"""Retry with exponential backoff."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from doc_indexer.core.config import Settings
from doc_indexer.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to try and how long to wait in between.

    With the defaults an operation is tried three times, waiting 1s after the
    first failure and 2s after the second.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            backoff_multiplier=settings.retry_backoff,
        )

    def delays(self) -> list[float]:
        """Waits applied between consecutive attempts."""
        return [self.initial_delay * self.backoff_multiplier**n for n in range(self.max_attempts - 1)]


def execute_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """Run *operation* until it succeeds or the policy is exhausted.

    The last exception is re-raised unchanged once every attempt has failed.
    """
    delays = policy.delays()
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except Exception as exc:
            if attempt == policy.max_attempts:
                logger.error("%s failed after %s attempts: %s", description, attempt, exc)
                raise
            delay = delays[attempt - 1]
            logger.warning(
                "%s failed (attempt %s/%s), retrying in %.1fs: %s",
                description,
                attempt,
                policy.max_attempts,
                delay,
                exc,
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["RetryPolicy", "execute_with_retry"]
