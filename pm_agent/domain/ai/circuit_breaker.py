"""Single-process circuit breaker guarding one logical async operation.

CLOSED passes calls through and counts consecutive failures. Reaching the
threshold opens the circuit for `cooldown_sec`; while OPEN every call fails
fast with `CircuitOpenError` and the wrapped operation is not invoked. The
first call after the cooldown runs as a HALF_OPEN trial: success closes the
circuit, failure re-opens it with a fresh cooldown.

State transitions are synchronous, so they are atomic under a single event
loop. Threads sharing one breaker would need a lock around them.
"""

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from pm_agent.domain.ai.errors import CircuitOpenError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        cooldown_sec: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "ai",
    ) -> None:
        self.failure_threshold = max(1, int(failure_threshold))
        self.cooldown_sec = max(0.0, float(cooldown_sec))
        self.name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._next_attempt = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def next_attempt(self) -> float:
        return self._next_attempt

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        self._before_call()
        is_trial = self._state is CircuitState.HALF_OPEN
        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result
        finally:
            if is_trial:
                self._trial_in_flight = False

    def snapshot(self) -> dict[str, object]:
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "retry_after_sec": self._retry_after(),
        }

    def _before_call(self) -> None:
        if self._state is CircuitState.OPEN:
            if self._clock() >= self._next_attempt:
                self._state = CircuitState.HALF_OPEN
                logger.info("Circuit %s HALF_OPEN, allowing trial call", self.name)
            else:
                raise CircuitOpenError(self._retry_after())

        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(0.0)
            self._trial_in_flight = True

    def _on_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("Circuit %s CLOSED after successful trial", self.name)
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def _on_failure(self) -> None:
        self._failure_count += 1
        if self._state is CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._next_attempt = self._clock() + self.cooldown_sec
            logger.warning(
                "Circuit %s OPEN after %d consecutive failures; cooling down for %.1fs",
                self.name,
                self._failure_count,
                self.cooldown_sec,
            )

    def _retry_after(self) -> float:
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self._next_attempt - self._clock())
