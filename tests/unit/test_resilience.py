"""
Unit tests for the circuit breaker and call timeouts.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from pkg.resilience import (
    CallTimeoutError,
    CircuitBreaker,
    CircuitBreakerError,
    CircuitState,
    call_with_timeout,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(name="engine", failure_threshold=3, recovery_timeout=10, clock=clock)


async def trip(breaker: CircuitBreaker, times: int) -> None:
    failing = AsyncMock(side_effect=ConnectionError("down"))
    for _ in range(times):
        with pytest.raises(ConnectionError):
            await breaker.call(failing)


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    @pytest.mark.asyncio
    async def test_success_passes_through(self, breaker):
        assert await breaker.call(AsyncMock(return_value=5)) == 5
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        await trip(breaker, 3)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerError):
            await breaker.call(AsyncMock())

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        await trip(breaker, 2)
        await breaker.call(AsyncMock())
        await trip(breaker, 2)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trial_call_closes(self, breaker, clock):
        await trip(breaker, 3)
        clock.now = 11

        await breaker.call(AsyncMock())

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_trial_call_reopens(self, breaker, clock):
        await trip(breaker, 3)
        clock.now = 11

        await trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN


class TestCallWithTimeout:
    """Tests for call_with_timeout."""

    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def quick():
            return "ok"

        assert await call_with_timeout(quick(), 1, "quick") == "ok"

    @pytest.mark.asyncio
    async def test_raises_named_timeout(self):
        with pytest.raises(CallTimeoutError) as exc_info:
            await call_with_timeout(asyncio.sleep(1), 0.01, "products.search")

        assert exc_info.value.operation == "products.search"
