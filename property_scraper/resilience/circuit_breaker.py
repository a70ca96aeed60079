"""Circuit breaker guarding calls to one external source."""
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from property_scraper.core.exceptions import CircuitOpenError
from property_scraper.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Stops calling a failing source for ``timeout`` seconds after ``threshold`` consecutive failures.

    Once the cooldown elapses a single trial call is let through (HALF_OPEN);
    its outcome closes or re-opens the circuit. Concurrent calls made while the
    trial is in flight are rejected.
    """

    def __init__(self, threshold: int = 5, timeout: float = 60.0, name: str = ""):
        self.threshold = threshold
        self.timeout = timeout
        self.name = name
        self.failures = 0
        self.last_failure_time = 0.0
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._state == CircuitState.OPEN:
            elapsed = time.monotonic() - self.last_failure_time
            if elapsed < self.timeout:
                raise CircuitOpenError(retry_after=self.timeout - elapsed)
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker %s half-open, allowing trial call", self.name)
        elif self._state == CircuitState.HALF_OPEN and self._trial_in_flight:
            raise CircuitOpenError("Circuit breaker is HALF_OPEN, trial call in progress")

        trial = self._state == CircuitState.HALF_OPEN
        if trial:
            self._trial_in_flight = True
        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result
        finally:
            if trial:
                self._trial_in_flight = False

    def _on_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Circuit breaker %s closed", self.name)
        self.failures = 0
        self._state = CircuitState.CLOSED

    def _on_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN or self.failures >= self.threshold:
            self._state = CircuitState.OPEN
            logger.error("Circuit breaker %s opened after %d failures", self.name, self.failures)

    def reset(self) -> None:
        self.failures = 0
        self.last_failure_time = 0.0
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False
