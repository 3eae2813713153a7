"""
Reliability utilities for storage access.

Includes a Circuit Breaker and bounded retry with backoff for idempotent
reads. Mutations are never retried here; a failed write surfaces to the
caller, who resubmits explicitly.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError

from poultry_backend.app.core.exceptions import StorageUnavailableError

logger = logging.getLogger("poultry_pos.reliability")

# Driver-level failures that mean "the database could not be reached".
STORAGE_ERRORS = (OperationalError, InterfaceError, DisconnectionError, ConnectionError, OSError)


class CircuitOpenError(StorageUnavailableError):
    def __init__(self, operation: str):
        super().__init__(operation, reason="circuit open")


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' consecutive failures occur, the circuit opens and
    rejects calls for 'reset_timeout' seconds, then lets one trial call through.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    def before_call(self, operation: str) -> None:
        if self.state == "OPEN":
            if time.monotonic() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError(operation)

    def record_success(self) -> None:
        if self.state != "CLOSED" or self.failures:
            self.reset_state()

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.monotonic()
        if self.state == "HALF_OPEN" or self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self) -> None:
        self.failures = 0
        self.state = "CLOSED"


async def retry_read(
    operation: str,
    func: Callable[[], Awaitable[Any]],
    attempts: int = 3,
    delay: float = 0.05,
    backoff: float = 2.0,
    breaker: CircuitBreaker = None,
) -> Any:
    """
    Run an idempotent read, retrying storage failures with exponential backoff.

    Args:
        operation: Name used in logs and in the surfaced error
        func: Zero-argument coroutine factory performing the read
        attempts: Total attempts (at least one)
        delay: Initial sleep between attempts, in seconds
        backoff: Multiplier applied to the delay after each failure
        breaker: Optional circuit breaker shared across reads

    Raises:
        StorageUnavailableError: when every attempt failed or the circuit is open
    """
    attempts = max(1, attempts)
    wait = delay
    last_error = None

    for attempt in range(1, attempts + 1):
        if breaker is not None:
            breaker.before_call(operation)
        try:
            result = await func()
        except STORAGE_ERRORS as exc:
            last_error = exc
            if breaker is not None:
                breaker.record_failure()
            logger.warning(
                "Storage read failed",
                extra={"operation": operation, "attempt": attempt, "error": type(exc).__name__},
            )
            if attempt < attempts:
                await asyncio.sleep(wait)
                wait *= backoff
            continue
        if breaker is not None:
            breaker.record_success()
        return result

    raise StorageUnavailableError(operation, reason=str(last_error)) from last_error
