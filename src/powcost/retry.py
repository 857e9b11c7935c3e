"""Retry helpers for remote store requests."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry/backoff policy for network operations."""

    timeout_seconds: float = 30.0
    retries: int = 0
    backoff_factor: float = 0.0
    circuit_breaker_failures: int = 3


class CircuitBreakerOpen(RuntimeError):
    """Raised when a circuit breaker has been tripped for the operation."""


@dataclass
class CircuitBreaker:
    """Counts consecutive failures across calls to one endpoint family."""

    threshold: int
    consecutive_failures: int = 0

    def record_success(self) -> None:
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        if self.threshold <= 0:
            return
        self.consecutive_failures += 1

    @property
    def is_open(self) -> bool:
        return self.threshold > 0 and self.consecutive_failures >= self.threshold


def execute_with_retry(
    action: Callable[[float], T],
    *,
    policy: RetryPolicy,
    description: str,
    logger,
    breaker: Optional[CircuitBreaker] = None,
    sleeper: Callable[[float], None] = time.sleep,
    retry_on: tuple = (OSError,),
) -> T:
    """Run ``action(timeout)`` retrying ``retry_on`` errors with exponential backoff."""

    if breaker and breaker.is_open:
        raise CircuitBreakerOpen(f"Circuit breaker open for {description}")

    attempt = 0
    while True:
        try:
            result = action(policy.timeout_seconds)
        except retry_on as exc:
            attempt += 1
            if attempt > policy.retries:
                if breaker:
                    breaker.record_failure()
                raise
            delay = max(0.0, policy.backoff_factor * (2 ** (attempt - 1)))
            logger.warning(
                "Retrying %s in %.2fs (%d/%d attempts) after error: %s",
                description,
                delay,
                attempt,
                policy.retries,
                exc,
            )
            if delay:
                sleeper(delay)
            continue
        else:
            if breaker:
                breaker.record_success()
            return result


__all__ = ["CircuitBreaker", "CircuitBreakerOpen", "RetryPolicy", "execute_with_retry"]
