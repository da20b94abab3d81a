"""Per-resource circuit breaker.

CLOSED -> OPEN after ``failure_threshold`` consecutive failures.
OPEN -> HALF_OPEN once ``reset_timeout`` has elapsed (checked on the next call).
HALF_OPEN -> CLOSED after ``success_threshold`` consecutive successful trial calls.
HALF_OPEN -> OPEN on any failure (counters reset, timer restarts).

While OPEN every call is rejected with ``CircuitOpenError`` before the wrapped
operation is invoked.  In HALF_OPEN a single trial call may be in flight at a time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from docgate.config.schema import BreakerPolicy
from docgate.errors import CircuitOpenError, GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker, for monitoring."""

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    opened_at: Optional[float]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "opened_at": self.opened_at,
        }


class CircuitBreaker:
    """Guards one named upstream resource."""

    def __init__(
        self,
        name: str,
        policy: BreakerPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.policy = policy or BreakerPolicy()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    # -- inspection ---------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        return self._state

    def snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            name=self.name,
            state=self._state,
            failure_count=self._failures,
            success_count=self._successes,
            opened_at=self._opened_at,
        )

    def retry_after(self) -> float:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.policy.reset_timeout - (self._clock() - self._opened_at))

    # -- execution ----------------------------------------------------------

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run *operation* through the breaker.

        Raises:
            CircuitOpenError: Without invoking *operation*, while the circuit
                is open or another half-open trial call is in flight.
        """
        async with self._lock:
            trial = self._admit()

        try:
            result = await operation()
        except asyncio.CancelledError:
            # The caller gave up; upstream health is unknown.
            async with self._lock:
                self._release_trial(trial)
            raise
        except GatewayError as exc:
            async with self._lock:
                if exc.retryable:
                    self._record_failure()
                else:
                    self._release_trial(trial)
            raise
        except Exception:
            async with self._lock:
                self._record_failure()
            raise

        async with self._lock:
            self._record_success()
        return result

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at = None
        self._trial_in_flight = False

    # -- state machine (caller holds the lock) ------------------------------

    def _admit(self) -> bool:
        if self._state is CircuitState.OPEN:
            if self.retry_after() > 0:
                raise CircuitOpenError(self.name, self.retry_after())
            self._transition(CircuitState.HALF_OPEN)
            self._successes = 0

        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(self.name, 0.0)
            self._trial_in_flight = True
            return True
        return False

    def _release_trial(self, trial: bool) -> None:
        if trial:
            self._trial_in_flight = False

    def _record_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self._successes += 1
            if self._successes >= self.policy.success_threshold:
                self._transition(CircuitState.CLOSED)
                self._failures = 0
                self._successes = 0
                self._opened_at = None
        else:
            self._failures = 0

    def _record_failure(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self._trip()
            return
        self._failures += 1
        if self._state is CircuitState.CLOSED and self._failures >= self.policy.failure_threshold:
            self._trip()

    def _trip(self) -> None:
        self._transition(CircuitState.OPEN)
        self._opened_at = self._clock()
        self._failures = 0
        self._successes = 0
        self._trial_in_flight = False

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is not self._state:
            log = logger.warning if new_state is CircuitState.OPEN else logger.info
            log("Circuit '%s': %s -> %s", self.name, self._state.value, new_state.value)
            self._state = new_state


class CircuitBreakerRegistry:
    """One breaker per named resource class, shared by all callers."""

    def __init__(
        self,
        default_policy: BreakerPolicy | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_policy = default_policy or BreakerPolicy()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_or_create(self, name: str, policy: BreakerPolicy | None = None) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, policy or self.default_policy, clock=self._clock)
            self._breakers[name] = breaker
        return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def states(self) -> Dict[str, CircuitSnapshot]:
        return {name: b.snapshot() for name, b in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
