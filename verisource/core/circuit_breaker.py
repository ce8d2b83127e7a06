"""Circuit breaker for the search and text-generation backends.

A backend that keeps failing is skipped for a cool-down period instead of
being hammered by every candidate of every pipeline run. Callers go
through ``call_with_retries`` and usually supply a fallback, so an open
circuit degrades to an empty result rather than an error.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states.

    CLOSED: Normal operation, calls pass through
    OPEN: Backend failing, calls short-circuit to the fallback
    HALF_OPEN: Cool-down elapsed, the next call probes the backend
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open and no fallback exists."""

    pass


@dataclass
class CircuitBreaker:
    """Failure counter shared by every client of one backend.

    Example:
        >>> breaker = CircuitBreaker("brave_search", failure_threshold=5, timeout=60.0)
        >>> results = await breaker.call_with_retries(do_search, fallback=list)

    Attributes:
        name: Backend label used in logs
        failure_threshold: Consecutive failures before the circuit opens
        timeout: Seconds the circuit stays open before a probe is allowed
    """

    name: str = "backend"
    failure_threshold: int = 5
    timeout: float = 60.0

    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    failure_count: int = field(default=0, init=False)
    opened_at: float | None = field(default=None, init=False)

    async def call_with_retries(
        self,
        func: Callable,
        *args: Any,
        retries: int = 3,
        backoff_base: float = 0.5,
        backoff_factor: float = 2.0,
        fallback: Callable[[], Any] | None = None,
        jitter: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Await ``func`` with retries, falling back when exhausted or open.

        Args:
            func: Async callable to run
            retries: Extra attempts after the first failure
            backoff_base: First delay between attempts (seconds)
            backoff_factor: Delay multiplier per attempt
            fallback: Zero-arg callable producing the degraded result
            jitter: Randomize delays by up to 100%

        Raises:
            CircuitOpenError: Circuit open and no fallback given
            Exception: Last error from ``func`` when no fallback is given
        """
        delay = backoff_base
        attempts = retries + 1

        for attempt in range(attempts):
            if not self._admit():
                if fallback is not None:
                    return fallback()
                raise CircuitOpenError(f"Circuit '{self.name}' open - service unavailable")

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                self._record_failure(e)
                if attempt == attempts - 1:
                    if fallback is not None:
                        return fallback()
                    raise
                await self._sleep(delay, jitter=jitter)
                delay *= backoff_factor
                continue

            self._record_success()
            return result

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    async def _sleep(self, delay: float, jitter: bool = True) -> None:
        actual = delay * (1.0 + random.random()) if jitter else delay
        await asyncio.sleep(actual)

    def _admit(self) -> bool:
        if self.state != CircuitState.OPEN:
            return True
        if self.opened_at is not None and time.monotonic() - self.opened_at < self.timeout:
            return False
        self.state = CircuitState.HALF_OPEN
        logger.info("circuit_half_open", circuit=self.name)
        return True

    def _record_success(self) -> None:
        if self.state != CircuitState.CLOSED:
            logger.info("circuit_closed", circuit=self.name)
        self.reset()

    def _record_failure(self, error: Exception) -> None:
        self.failure_count += 1
        # A failed probe reopens immediately.
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    "circuit_opened",
                    circuit=self.name,
                    failures=self.failure_count,
                    error=str(error),
                )
            self.state = CircuitState.OPEN
            self.opened_at = time.monotonic()
