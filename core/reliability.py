"""
Reliability utilities: Circuit breaker and retry logic.

Source plugins call external APIs through a per-plugin circuit breaker
and a bounded retry loop. Unlike a silent fallback, both raise so the
plugin boundary can classify the failure.
"""

import asyncio
import logging
import random
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from core.errors import CircuitOpenError

__all__ = [
    "CircuitState",
    "CircuitBreaker",
    "RetryStrategy",
    "retry_async",
]

logger = logging.getLogger(__name__)

# ══════════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════════


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """
    Stops hammering a source that keeps failing.

    After ``failure_threshold`` consecutive failures the circuit opens and
    every call raises CircuitOpenError until ``timeout`` seconds have passed.
    The next call is then let through in HALF_OPEN state; enough successes
    close the circuit again, a failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 1,
        timeout: float = 300.0,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout

        self.failure_count = 0
        self.success_count = 0
        self.state = CircuitState.CLOSED
        self.opened_at: float | None = None

    def remaining_cooldown(self) -> float:
        if self.state != CircuitState.OPEN:
            return 0.0
        return max(self.timeout - (time.time() - (self.opened_at or 0)), 0.0)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute async function through circuit breaker."""
        if self.state == CircuitState.OPEN:
            if self.remaining_cooldown() <= 0:
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                logger.info(f"Circuit for {self.name} half-open, probing")
            else:
                raise CircuitOpenError(self.name, self.remaining_cooldown())

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.state = CircuitState.CLOSED
                self.success_count = 0
                logger.info(f"Circuit for {self.name} closed")

    def record_failure(self) -> None:
        self.failure_count += 1
        if (
            self.state == CircuitState.HALF_OPEN
            or self.failure_count >= self.failure_threshold
        ):
            self.state = CircuitState.OPEN
            self.opened_at = time.time()
            self.failure_count = 0
            logger.warning(
                f"Circuit for {self.name} opened for {self.timeout:.0f}s"
            )

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at = None


# ══════════════════════════════════════════════════════════════════════════════
# Retry Logic
# ══════════════════════════════════════════════════════════════════════════════


class RetryStrategy(Enum):
    """Retry delay strategies."""

    EXPONENTIAL = "exponential"  # 1s, 2s, 4s, 8s
    LINEAR = "linear"  # 1s, 2s, 3s, 4s
    CONSTANT = "constant"  # 1s, 1s, 1s, 1s


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    *args,
    attempts: int = 3,
    base_delay: float = 1.0,
    strategy: RetryStrategy = RetryStrategy.CONSTANT,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    **kwargs,
) -> Any:
    """
    Execute an async function with bounded retries.

    Args:
        func: Async function to call
        *args: Positional arguments
        attempts: Total attempts including the first call
        base_delay: Base delay between attempts in seconds
        strategy: Retry delay strategy
        should_retry: Predicate deciding whether an exception is worth
            another attempt; non-retryable errors are raised immediately
        **kwargs: Keyword arguments

    Returns:
        Result from func

    Raises:
        The last exception once attempts are exhausted.
    """
    for attempt in range(attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            retryable = should_retry(e) if should_retry else True
            if not retryable or attempt == attempts - 1:
                if retryable:
                    logger.error(f"Failed after {attempts} attempts: {e}")
                raise

            delay = _calculate_delay(attempt, base_delay, strategy)
            logger.warning(
                f"Retry {attempt + 1}/{attempts - 1}: {type(e).__name__}. "
                f"Waiting {delay:.1f}s..."
            )
            await asyncio.sleep(delay)


def _calculate_delay(attempt: int, base: float, strategy: RetryStrategy) -> float:
    """Calculate retry delay with jitter."""
    if base <= 0:
        return 0.0
    if strategy == RetryStrategy.EXPONENTIAL:
        delay = min(base * (2**attempt), 10.0)
    elif strategy == RetryStrategy.LINEAR:
        delay = min(base * (attempt + 1), 10.0)
    else:
        delay = base

    # Add jitter to prevent thundering herd
    return delay + random.uniform(0, 0.1 * delay)
