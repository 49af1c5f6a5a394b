"""Circuit breaker for the pipeline's external collaborators.

The AI extraction provider and the geocoder each sit behind one breaker.
Once a collaborator has failed ``failure_threshold`` times in a row, the
remaining posts of the batch skip it immediately instead of each spending
their full retry budget. After ``recovery_timeout`` one probe call is let
through; its outcome decides whether the circuit closes again.

Usage:
    breaker = GenericCircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="geocoder")
    try:
        result = await breaker.call(client.geocode, venue, address)
    except CircuitOpenError:
        result = None  # skip the enrichment
"""

import enum
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when a collaborator is skipped because its circuit is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit {name} is open, next probe in {retry_after:.1f}s")


class GenericCircuitBreaker:
    """
    Consecutive-failure circuit breaker around an async callable.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds the circuit stays open before a probe.
        name: Collaborator name used in logs and errors.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "collaborator",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self.skipped_calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def retry_after(self) -> float:
        """Seconds until an open circuit lets a probe through (0 when not open)."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self._recovery_timeout - (self._clock() - self._opened_at))

    def _admit(self) -> None:
        if self._state != CircuitState.OPEN:
            return
        wait = self.retry_after
        if wait > 0:
            self.skipped_calls += 1
            raise CircuitOpenError(self._name, wait)
        self._state = CircuitState.HALF_OPEN
        logger.info(f"Circuit {self._name} half-open, probing")

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Run ``fn`` unless the circuit is open.

        Any exception raised by ``fn`` counts as a failure and is re-raised.

        Raises:
            CircuitOpenError: If the circuit is open.
        """
        self._admit()
        try:
            result = await fn(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info(f"Circuit {self._name} closed after successful probe")
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state == CircuitState.HALF_OPEN:
            self._open("probe failed")
        elif self._state == CircuitState.CLOSED and self._consecutive_failures >= self._failure_threshold:
            self._open(f"{self._consecutive_failures} consecutive failures")

    def _open(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(f"Circuit {self._name} opened: {reason}")
