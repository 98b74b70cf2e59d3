"""
Backpressure utilities for search backend calls.

Provides a circuit breaker that stops hammering a failing backend, a bounded
request queue used as the page worker pool, and parsing of rate limit
headers so retries can honour ``Retry-After``.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting calls
    HALF_OPEN = "half_open"  # Probing for recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5  # Consecutive failures before opening
    success_threshold: int = 1  # Successes in half-open before closing
    timeout_seconds: float = 30.0  # Time open before probing


class CircuitOpenError(RuntimeError):
    """Raised when a call is rejected because the circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker around an async backend call.

    Only failures that say something about backend health count: 5xx, 429,
    timeouts and connection errors. A 400 for a malformed query does not.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def call(self, func, *args, **kwargs):
        """
        Execute ``func`` through the breaker.

        Raises
        ------
        CircuitOpenError
            If the circuit is open and the cool-down has not elapsed.
        Exception
            Anything raised by ``func``.
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                elapsed = time.monotonic() - (self.opened_at or 0.0)
                if elapsed < self.config.timeout_seconds:
                    logger.warning(
                        f"circuit_breaker.{self.name}.blocked",
                        extra={"opened_for_seconds": round(elapsed, 3)},
                    )
                    raise CircuitOpenError(
                        f"Circuit breaker '{self.name}' is OPEN - backend unavailable. "
                        f"Try again in {self.config.timeout_seconds - elapsed:.0f}s."
                    )
                self.state = CircuitState.HALF_OPEN
                self.success_count = 0
                logger.info(
                    f"circuit_breaker.{self.name}.half_open",
                    extra={"state_change": "open -> half_open"},
                )

        try:
            result = await func(*args, **kwargs)
        except Exception as exc:
            await self._on_failure(exc)
            raise
        await self._on_success()
        return result

    async def _on_success(self):
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.state = CircuitState.CLOSED
                    self.opened_at = None
                    logger.info(
                        f"circuit_breaker.{self.name}.closed",
                        extra={"state_change": "half_open -> closed"},
                    )
            self.failure_count = 0

    async def _on_failure(self, exc: Exception):
        if not self._should_count_failure(exc):
            return
        async with self._lock:
            self.failure_count += 1
            if self.state == CircuitState.HALF_OPEN or (
                self.state == CircuitState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                previous = self.state.value
                self.state = CircuitState.OPEN
                self.opened_at = time.monotonic()
                logger.error(
                    f"circuit_breaker.{self.name}.opened",
                    extra={
                        "state_change": f"{previous} -> open",
                        "failure_count": self.failure_count,
                        "error": str(exc),
                    },
                )

    @staticmethod
    def _should_count_failure(exc: Exception) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code >= 500 or exc.response.status_code == 429
        return isinstance(
            exc, (httpx.TimeoutException, httpx.ConnectError, asyncio.TimeoutError)
        )

    async def reset(self):
        """Manually close the circuit."""
        async with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.opened_at = None
        logger.info(f"circuit_breaker.{self.name}.reset", extra={"state": "closed"})


def retry_after_seconds(response) -> Optional[float]:
    """
    Parse ``Retry-After`` from an HTTP response.

    Accepts either delta-seconds or an HTTP date. Returns None when the
    header is absent or unparseable.
    """
    if not isinstance(response, httpx.Response):
        return None
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        return max(0.0, parsedate_to_datetime(value).timestamp() - time.time())
    except (TypeError, ValueError):
        logger.warning("rate_limit.parse_retry_after_failed", extra={"value": value})
        return None


class RequestQueue:  # pylint: disable=too-few-public-methods
    """
    Bounded async worker pool.

    At most ``max_concurrent`` calls run at once; the rest wait on the
    semaphore. ``in_flight`` is exposed for logging and tests.
    """

    def __init__(self, max_concurrent: int = 10):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.in_flight = 0
        self.peak_in_flight = 0
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def execute(self, func, *args, **kwargs):
        """Run ``func`` once a slot is free and return its result."""
        async with self._semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return await func(*args, **kwargs)
            finally:
                self.in_flight -= 1
