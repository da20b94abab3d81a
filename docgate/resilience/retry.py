"""Retry with exponential backoff for upstream calls.

Backoff schedule (defaults: initial 1s, factor 2, cap 30s, 5 attempts):
  Attempt 1: immediate
  Attempt 2: 1s
  Attempt 3: 2s
  Attempt 4: 4s
  Attempt 5: 8s

Each attempt runs under its own timeout.  Errors tagged with a
non-retryable kind (security block, review required, invalid state, fatal)
abort immediately.  Cancellation of the caller is never swallowed.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from docgate.config.schema import RetryPolicy
from docgate.errors import GatewayError, RetriesExhaustedError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_seconds(
    attempt_index: int,
    initial_delay: float = 1.0,
    factor: float = 2.0,
    cap: float = 30.0,
    jitter: bool = False,
) -> float:
    """Delay before the retry that follows attempt *attempt_index* (zero-based).

    Uses ``initial_delay * factor ** attempt_index`` capped at *cap*.  With
    *jitter*, up to 10% of the delay is added at random.
    """
    if attempt_index < 0:
        return 0.0

    delay = min(initial_delay * (factor ** attempt_index), cap)
    if jitter:
        delay += delay * 0.1 * random.random()
    return delay


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation.

    Attributes:
        success: True if an attempt completed without error.
        attempts: Number of attempts actually made.
        result: Return value of the successful attempt.
        error: Last error seen when unsuccessful.
        exhausted: True if every attempt failed; False if aborted early.
        label: Operation label used in logs.
    """

    success: bool
    attempts: int
    result: T | None = None
    error: BaseException | None = None
    exhausted: bool = False
    label: str = "operation"

    def unwrap(self) -> T:
        """Return the result, or raise the error that ended the retry loop."""
        if self.success:
            return self.result  # type: ignore[return-value]
        if self.exhausted:
            raise RetriesExhaustedError(self.label, self.attempts, self.error) from self.error
        assert self.error is not None
        raise self.error


class RetryExecutor:
    """Runs an async operation with bounded, exponentially spaced retries."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    def delay_for(self, attempt_index: int) -> float:
        p = self.policy
        return compute_backoff_seconds(
            attempt_index,
            initial_delay=p.initial_delay,
            factor=p.backoff_factor,
            cap=p.max_delay,
            jitter=p.jitter,
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "operation",
    ) -> RetryResult[T]:
        """Invoke *operation* until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt.
            label: Name used in log lines and in the exhaustion error.

        Returns:
            RetryResult describing the outcome.  Never raises for operation
            errors; ``asyncio.CancelledError`` propagates.
        """
        p = self.policy
        last_error: BaseException | None = None

        for attempt in range(p.max_attempts):
            try:
                value = await asyncio.wait_for(operation(), timeout=p.attempt_timeout)
            except asyncio.TimeoutError:
                last_error = TransientError(
                    f"{label} timed out after {p.attempt_timeout:.1f}s",
                    details={"label": label, "attempt": attempt + 1},
                )
            except GatewayError as exc:
                if not exc.retryable:
                    logger.info("%s aborted on non-retryable %s", label, exc.kind.value)
                    return RetryResult(
                        success=False, attempts=attempt + 1, error=exc, label=label,
                    )
                last_error = exc
            except Exception as exc:
                last_error = exc
            else:
                if attempt:
                    logger.info("%s succeeded on attempt %d", label, attempt + 1)
                return RetryResult(success=True, attempts=attempt + 1, result=value, label=label)

            if attempt + 1 < p.max_attempts:
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    label, attempt + 1, p.max_attempts, last_error, delay,
                )
                await self._sleep(delay)

        logger.error("%s failed after %d attempts: %s", label, p.max_attempts, last_error)
        return RetryResult(
            success=False,
            attempts=p.max_attempts,
            error=last_error,
            exhausted=True,
            label=label,
        )
