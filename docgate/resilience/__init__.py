"""Resilience primitives -- retry with backoff, circuit breaker, rate limiting."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitSnapshot,
    CircuitState,
)
from .rate_limiter import RateLimiter
from .retry import RetryExecutor, RetryResult, compute_backoff_seconds

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitSnapshot",
    "CircuitState",
    "RateLimiter",
    "RetryExecutor",
    "RetryResult",
    "compute_backoff_seconds",
]
