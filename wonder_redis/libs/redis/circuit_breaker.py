"""
Circuit breaker guarding the Redis connection pool.

After ``failure_threshold`` consecutive command failures the breaker opens and
connection acquisition is refused outright, so callers fail fast instead of
waiting on socket timeouts. Once ``reset_timeout`` seconds have passed since
the last failure a single probe is let through.
"""

import asyncio
import enum
import time
from typing import Optional

from wonder_redis.log.logging import logger


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # commands pass through
    OPEN = "open"            # commands are refused
    HALF_OPEN = "half_open"  # probing for recovery


class CircuitBreaker:
    """
    Three-state circuit breaker.

    All transitions happen under an ``asyncio.Lock`` so concurrent commands
    sharing one pool observe a consistent state.
    """

    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 30):
        """
        Args:
            failure_threshold: Consecutive failures before the circuit opens
            reset_timeout: Seconds to wait before probing an open circuit
        """
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self._lock = asyncio.Lock()

        logger.debug(
            "Circuit breaker ready (failure_threshold={threshold}, reset_timeout={timeout}s)",
            threshold=failure_threshold,
            timeout=reset_timeout,
        )

    def _reset_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return time.monotonic() - self.last_failure_time >= self.reset_timeout

    async def is_allowed(self) -> bool:
        """Return True if a command may be sent to Redis right now."""
        async with self._lock:
            if self.state is CircuitState.OPEN:
                if not self._reset_elapsed():
                    return False
                logger.info(
                    "Circuit breaker half-open after {timeout}s, probing Redis",
                    timeout=self.reset_timeout,
                )
                self.state = CircuitState.HALF_OPEN
            return True

    async def record_success(self) -> None:
        """Record a successful command."""
        async with self._lock:
            if self.state is CircuitState.HALF_OPEN:
                logger.info("Circuit breaker closed, Redis recovered")
                self.state = CircuitState.CLOSED
                self.last_failure_time = None
            self.failure_count = 0

    async def record_failure(self) -> None:
        """Record a failed command."""
        async with self._lock:
            self.last_failure_time = time.monotonic()

            if self.state is CircuitState.HALF_OPEN:
                logger.warning("Circuit breaker reopened, Redis probe failed")
                self.state = CircuitState.OPEN
                return

            self.failure_count += 1
            if self.state is CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
                logger.warning(
                    "Circuit breaker opened after {count} consecutive failures",
                    count=self.failure_count,
                )
                self.state = CircuitState.OPEN

    async def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        async with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.last_failure_time = None
