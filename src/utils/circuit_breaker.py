"""
Circuit Breaker for Narrative Providers
=======================================

Each provider in the narrative chain sits behind its own breaker. After
``failure_threshold`` consecutive failures the breaker opens and the chain
skips that provider until ``reset_timeout`` has passed; one trial call then
decides whether it closes again.

Cancellation is not a provider failure: a cancelled call releases its slot
without touching the failure count.

Usage:
    breaker = CircuitBreaker(name="anthropic", failure_threshold=3)

    async with breaker:
        text = await provider.generate(prompt)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# CIRCUIT BREAKER STATES
# =============================================================================

class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Calls pass through
    OPEN = "open"            # Calls rejected immediately
    HALF_OPEN = "half_open"  # Trial calls decide recovery


@dataclass
class CircuitStats:
    """Statistics for circuit breaker."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    cancelled_calls: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    consecutive_failures: int = 0
    consecutive_successes: int = 0


class CircuitOpenError(Exception):
    """Raised when the circuit is open and rejecting calls."""

    def __init__(self, name: str, retry_in: float):
        self.name = name
        self.retry_in = retry_in
        super().__init__(f"Circuit {name} is OPEN; retry in {retry_in:.1f}s")


# =============================================================================
# CIRCUIT BREAKER IMPLEMENTATION
# =============================================================================

class CircuitBreaker:
    """
    Async-context circuit breaker.

    States:
    - CLOSED: Normal operation
    - OPEN: Provider failing, reject calls immediately
    - HALF_OPEN: Testing recovery, allow limited calls
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        success_threshold: int = 1,
        reset_timeout: float = 60.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Provider name for logging
            failure_threshold: Consecutive failures before opening
            success_threshold: Successes in half-open before closing
            reset_timeout: Seconds before an open circuit allows a trial call
            half_open_max_calls: Concurrent trial calls allowed in half-open
            clock: Monotonic time source (injectable for tests)
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._stats = CircuitStats()
        self._lock = asyncio.Lock()
        self._half_open_calls = 0

    @property
    def state(self) -> CircuitState:
        """Current state, applying the open -> half-open transition."""
        if self._state == CircuitState.OPEN and self._stats.last_failure_time is not None:
            elapsed = self._clock() - self._stats.last_failure_time
            if elapsed >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                logger.info(f"Circuit {self.name}: OPEN -> HALF_OPEN (reset timeout)")
        return self._state

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def stats(self) -> CircuitStats:
        return self._stats

    def _retry_in(self) -> float:
        if self._stats.last_failure_time is None:
            return 0.0
        return max(0.0, self.reset_timeout - (self._clock() - self._stats.last_failure_time))

    async def __aenter__(self):
        async with self._lock:
            state = self.state

            if state == CircuitState.OPEN:
                self._stats.rejected_calls += 1
                raise CircuitOpenError(self.name, self._retry_in())

            if state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    self._stats.rejected_calls += 1
                    raise CircuitOpenError(self.name, 0.0)
                self._half_open_calls += 1

            self._stats.total_calls += 1

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        async with self._lock:
            if exc_type is None:
                self._on_success()
            elif issubclass(exc_type, asyncio.CancelledError):
                self._stats.cancelled_calls += 1
                if self._state == CircuitState.HALF_OPEN:
                    self._half_open_calls = max(0, self._half_open_calls - 1)
            else:
                self._on_failure(exc_val)

        return False  # Never suppress

    def _on_success(self):
        self._stats.successful_calls += 1
        self._stats.last_success_time = self._clock()
        self._stats.consecutive_successes += 1
        self._stats.consecutive_failures = 0

        if self._state == CircuitState.HALF_OPEN:
            if self._stats.consecutive_successes >= self.success_threshold:
                self._state = CircuitState.CLOSED
                logger.info(f"Circuit {self.name}: HALF_OPEN -> CLOSED (recovered)")

    def _on_failure(self, error: BaseException):
        self._stats.failed_calls += 1
        self._stats.last_failure_time = self._clock()
        self._stats.consecutive_failures += 1
        self._stats.consecutive_successes = 0

        logger.debug(f"Circuit {self.name}: failure #{self._stats.consecutive_failures}: {error}")

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(f"Circuit {self.name}: HALF_OPEN -> OPEN (failure during trial)")

        elif self._state == CircuitState.CLOSED:
            if self._stats.consecutive_failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                logger.warning(f"Circuit {self.name}: CLOSED -> OPEN (threshold reached)")

    def reset(self):
        """Manually reset circuit to closed state."""
        self._state = CircuitState.CLOSED
        self._stats = CircuitStats()
        self._half_open_calls = 0
        logger.info(f"Circuit {self.name}: manually reset to CLOSED")


# =============================================================================
# HEALTH REPORTING
# =============================================================================

def get_circuit_health(breakers: Dict[str, CircuitBreaker]) -> Dict[str, Dict]:
    """State and counters of each breaker, keyed by provider name."""
    return {
        name: {
            "state": breaker.state.value,
            "stats": {
                "total_calls": breaker.stats.total_calls,
                "successful": breaker.stats.successful_calls,
                "failed": breaker.stats.failed_calls,
                "rejected": breaker.stats.rejected_calls,
                "cancelled": breaker.stats.cancelled_calls,
                "consecutive_failures": breaker.stats.consecutive_failures,
            },
            "healthy": breaker.is_closed,
        }
        for name, breaker in breakers.items()
    }
