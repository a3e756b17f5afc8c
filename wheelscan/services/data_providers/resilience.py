"""
Resilience patterns for upstream API calls.

This module provides:
1. Circuit Breaker - Fail fast after consecutive transport failures
2. Retry - Exponential backoff with jitter for transient errors

Usage:
    from wheelscan.services.data_providers.resilience import CircuitBreaker, retry_async

    breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="financialdata")

    async def fetch():
        breaker.guard()
        try:
            result = await retry_async(do_fetch, retry_on=(httpx.TransportError,))
        except Exception as e:
            breaker.record_failure(e)
            raise
        breaker.record_success()
        return result
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from wheelscan.core.exceptions import ProviderUnavailableError
from wheelscan.core.logging import get_logger

logger = get_logger("resilience")

T = TypeVar("T")


class CircuitOpenError(ProviderUnavailableError):
    """Raised when the circuit breaker is open and blocking calls."""

    error_code = "CIRCUIT_OPEN"


class RetryExhaustedError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        self.attempts = attempts
        self.last_error = last_error
        message = f"All {attempts} retry attempts exhausted"
        if last_error:
            message += f": {last_error}"
        super().__init__(message)


# =============================================================================
# Circuit Breaker
# =============================================================================


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast, blocking calls
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreaker:
    """
    Circuit breaker for fail-fast protection of an upstream provider.

    States:
    - CLOSED: Normal operation, counting failures
    - OPEN: After threshold failures, block all calls
    - HALF_OPEN: After recovery timeout, allow test request

    Args:
        failure_threshold: Number of consecutive failures before opening
        recovery_timeout: Seconds to wait before testing (half-open)
        name: Identifier for logging
        excluded_exceptions: Exception types that shouldn't trip the circuit
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    name: str = "circuit"
    excluded_exceptions: tuple[type, ...] = ()
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: float | None = field(default=None, init=False)

    @property
    def state(self) -> CircuitState:
        """Current circuit state (may transition from OPEN to HALF_OPEN)."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self.clock() - self._last_failure_time >= self.recovery_timeout:
                return CircuitState.HALF_OPEN
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def guard(self) -> None:
        """Raise CircuitOpenError if calls are currently blocked."""
        state = self.state
        if state == CircuitState.OPEN:
            remaining = self.recovery_timeout - (self.clock() - (self._last_failure_time or 0))
            raise CircuitOpenError(
                f"{self.name} unavailable after {self._failure_count} failures, "
                f"retry in {remaining:.1f}s"
            )
        if state == CircuitState.HALF_OPEN:
            logger.info(f"[{self.name}] Circuit half-open, allowing test request")

    def record_success(self) -> None:
        """Record a successful call, reset failure count."""
        if self._state != CircuitState.CLOSED:
            logger.info(f"[{self.name}] Circuit closed after successful recovery")
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None

    def record_failure(self, error: Exception | None = None) -> None:
        """Record a failed call. Opens circuit after threshold failures."""
        if error is not None and isinstance(error, self.excluded_exceptions):
            return

        self._failure_count += 1
        self._last_failure_time = self.clock()

        if self._failure_count >= self.failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(f"[{self.name}] Circuit OPEN after {self._failure_count} failures")
            self._state = CircuitState.OPEN
        else:
            logger.debug(f"[{self.name}] Failure {self._failure_count}/{self.failure_threshold}")

    def reset(self) -> None:
        """Force reset to closed state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self.failure_threshold,
        }


# =============================================================================
# Retry with Exponential Backoff
# =============================================================================


DEFAULT_RETRY_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    jitter: float = 0.5,
    retry_on: tuple[type[Exception], ...] = DEFAULT_RETRY_EXCEPTIONS,
) -> T:
    """
    Retry an async callable with exponential backoff.

    Args:
        func: Async callable to retry
        max_attempts: Maximum attempts (including the first)
        base_delay: Initial delay
        max_delay: Max delay cap
        exponential_base: Exponential growth base
        jitter: Jitter factor (0.5 = +/-50% of delay)
        retry_on: Exceptions to retry on

    Returns:
        Result from successful func call

    Raises:
        RetryExhaustedError: If all attempts fail
    """
    last_error: Exception | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except retry_on as e:
            last_error = e

            if attempt >= max_attempts:
                logger.warning(f"Retry exhausted after {max_attempts} attempts: {e}")
                raise RetryExhaustedError(max_attempts, last_error) from e

            delay = min(base_delay * (exponential_base ** (attempt - 1)), max_delay)
            if jitter > 0:
                delay *= 1 + (random.random() - 0.5) * 2 * jitter

            logger.debug(f"Retry {attempt}/{max_attempts} after {delay:.2f}s: {e}")
            await asyncio.sleep(delay)

    raise RetryExhaustedError(max_attempts, last_error)
