"""
NeuroNote - Circuit Breaker Unit Tests
======================================

Tests for breaker state transitions and cancellation accounting.
"""

import asyncio

import pytest


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    from src.utils.circuit_breaker import CircuitBreaker
    return CircuitBreaker(name="primary", failure_threshold=3, reset_timeout=60.0, clock=clock)


async def fail(breaker):
    with pytest.raises(RuntimeError):
        async with breaker:
            raise RuntimeError("provider down")


async def succeed(breaker):
    async with breaker:
        pass


# =============================================================================
# State Transitions
# =============================================================================

class TestTransitions:
    """Tests for CLOSED -> OPEN -> HALF_OPEN -> CLOSED."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        """Consecutive failures up to the threshold open the circuit."""
        from src.utils.circuit_breaker import CircuitOpenError

        await fail(breaker)
        await fail(breaker)
        assert breaker.is_closed

        await fail(breaker)
        assert breaker.is_open

        with pytest.raises(CircuitOpenError):
            await succeed(breaker)
        assert breaker.stats.rejected_calls == 1

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        """A success between failures restarts the count."""
        await fail(breaker)
        await fail(breaker)
        await succeed(breaker)
        await fail(breaker)

        assert breaker.is_closed
        assert breaker.stats.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_half_open_recovery(self, breaker, clock):
        """After the reset timeout one trial success closes the circuit."""
        from src.utils.circuit_breaker import CircuitState

        for _ in range(3):
            await fail(breaker)
        clock.now += 60.0

        assert breaker.state == CircuitState.HALF_OPEN
        await succeed(breaker)
        assert breaker.is_closed

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        """A failed trial call reopens the circuit."""
        for _ in range(3):
            await fail(breaker)
        clock.now += 60.0

        await fail(breaker)

        assert breaker.is_open

    @pytest.mark.asyncio
    async def test_reset(self, breaker):
        """reset() closes the circuit and clears counters."""
        for _ in range(3):
            await fail(breaker)

        breaker.reset()

        assert breaker.is_closed
        assert breaker.stats.failed_calls == 0


# =============================================================================
# Cancellation
# =============================================================================

class TestCancellation:
    """Tests that cancellation is not a failure."""

    @pytest.mark.asyncio
    async def test_cancelled_call_not_counted(self, breaker):
        """A cancelled call increments cancelled_calls only."""
        started = asyncio.Event()

        async def slow_call():
            async with breaker:
                started.set()
                await asyncio.sleep(10)

        task = asyncio.create_task(slow_call())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert breaker.stats.cancelled_calls == 1
        assert breaker.stats.failed_calls == 0
        assert breaker.stats.consecutive_failures == 0
        assert breaker.is_closed

    def test_health_dict(self, breaker):
        """get_circuit_health reports state and counters per breaker."""
        from src.utils.circuit_breaker import get_circuit_health

        health = get_circuit_health({"primary": breaker})

        assert health["primary"]["state"] == "closed"
        assert health["primary"]["healthy"] is True
        assert health["primary"]["stats"]["cancelled"] == 0
