"""
Tests for resilience patterns (circuit breaker, retry).
"""

import asyncio

import pytest

from wheelscan.core.exceptions import ProviderUnavailableError
from wheelscan.services.data_providers.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    RetryExhaustedError,
    retry_async,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# =============================================================================
# Circuit Breaker Tests
# =============================================================================


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_initial_state_is_closed(self):
        breaker = CircuitBreaker(name="test")
        assert breaker.state == CircuitState.CLOSED
        assert not breaker.is_open

    def test_opens_after_threshold_failures(self):
        breaker = CircuitBreaker(failure_threshold=3, name="test")

        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

    def test_guard_raises_when_open(self):
        breaker = CircuitBreaker(failure_threshold=1, name="test")
        breaker.record_failure()

        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.guard()
        assert "test unavailable" in exc_info.value.message

    def test_circuit_open_is_provider_unavailable(self):
        assert issubclass(CircuitOpenError, ProviderUnavailableError)

    def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(failure_threshold=3, name="test")

        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_stats()["failure_count"] == 1

    def test_half_open_after_recovery_timeout(self):
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30.0, clock=clock)
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

        clock.now = 30.0
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.guard()  # test request allowed

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_excluded_exceptions_do_not_count(self):
        breaker = CircuitBreaker(failure_threshold=1, excluded_exceptions=(KeyError,))
        breaker.record_failure(KeyError("missing"))
        assert breaker.state == CircuitState.CLOSED

    def test_reset(self):
        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED


# =============================================================================
# Retry Tests
# =============================================================================


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        calls = []

        async def fn():
            calls.append(1)
            return "ok"

        assert await retry_async(fn) == "ok"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self):
        attempts = {"n": 0}

        async def flaky():
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise ConnectionError("reset")
            return "ok"

        result = await retry_async(flaky, max_attempts=3, base_delay=0.001, jitter=0)
        assert result == "ok"
        assert attempts["n"] == 3

    @pytest.mark.asyncio
    async def test_exhaustion_raises_with_last_error(self):
        async def down():
            raise ConnectionError("refused")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(down, max_attempts=2, base_delay=0.001, jitter=0)
        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_non_retryable_errors_propagate(self):
        attempts = {"n": 0}

        async def bad():
            attempts["n"] += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await retry_async(bad, max_attempts=3, base_delay=0.001)
        assert attempts["n"] == 1

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)

        async def down():
            raise TimeoutError()

        with pytest.raises(RetryExhaustedError):
            await retry_async(down, max_attempts=4, base_delay=1.0, max_delay=3.0, jitter=0)
        assert delays == [1.0, 2.0, 3.0]
