"""
Circuit Breaker for the advisory service.

Retries are the caller's business; the breaker only stops the core from
waiting on a service that keeps failing. While OPEN, calls are rejected
at once and the session falls back to the deterministic result.
"""

import threading
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"       # Normal operation
    OPEN = "open"           # Rejecting all requests
    HALF_OPEN = "half_open" # Testing with one request


class CircuitOpenError(Exception):
    """Raised when a circuit breaker is open and rejects a call."""
    pass


class CircuitBreaker:
    """
    Prevent waiting on an advisory service that is down.

    States: CLOSED → OPEN → HALF_OPEN → CLOSED
    - CLOSED: normal. After `failure_threshold` failures in `window_seconds` → OPEN
    - OPEN: reject immediately for `recovery_timeout` seconds
    - HALF_OPEN: allow 1 request. Success → CLOSED; Failure → OPEN
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        window_seconds: float = 60.0,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: list[float] = []
        self._opened_at: float = 0.0
        self._half_open_in_progress = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info("circuit_half_open", breaker=self.name)
        return self._state

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Execute fn through the circuit breaker."""
        with self._lock:
            state = self._current_state()

            if state == CircuitState.OPEN:
                logger.warning("circuit_open_rejected", breaker=self.name)
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is OPEN")

            if state == CircuitState.HALF_OPEN:
                if self._half_open_in_progress:
                    raise CircuitOpenError(f"Circuit breaker '{self.name}' is testing")
                self._half_open_in_progress = True

        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        except BaseException:
            # Cancelled: the call neither succeeded nor failed.
            with self._lock:
                self._half_open_in_progress = False
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        with self._lock:
            if self._state in (CircuitState.HALF_OPEN, CircuitState.OPEN):
                logger.info("circuit_closed", breaker=self.name)
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._half_open_in_progress = False

    def _on_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._half_open_in_progress = False

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._opened_at = now
                logger.warning("circuit_reopened", breaker=self.name)
                return

            # Prune old failures outside window
            cutoff = now - self.window_seconds
            self._failures = [t for t in self._failures if t > cutoff]
            self._failures.append(now)

            if len(self._failures) >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = now
                logger.warning(
                    "circuit_opened",
                    breaker=self.name,
                    failures=len(self._failures),
                    threshold=self.failure_threshold,
                )

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._half_open_in_progress = False
