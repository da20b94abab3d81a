"""Token-bucket rate limiting per upstream resource class.

Each resource class ("source.metadata", "source.export", "generator", ...)
gets its own bucket because the upstream quotas differ by orders of
magnitude.  Buckets are shared by every concurrent caller in the process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Mapping, Optional

from docgate.config.schema import RateLimit
from docgate.errors import RateLimitExceededError

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    rate: float
    burst: float
    tokens: float
    last: float


class RateLimiter:
    """Token buckets keyed by resource class.

    Unknown resource classes are not limited.
    """

    def __init__(
        self,
        limits: Mapping[str, RateLimit] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        for resource, limit in (limits or {}).items():
            self.configure(resource, limit.rate, limit.burst)

    def configure(self, resource: str, rate: float, burst: int) -> None:
        if rate <= 0 or burst < 1:
            raise ValueError(f"Invalid rate limit for {resource!r}: rate={rate}, burst={burst}")
        self._buckets[resource] = _Bucket(
            rate=float(rate), burst=float(burst), tokens=float(burst), last=self._clock(),
        )

    def _refill(self, bucket: _Bucket) -> None:
        now = self._clock()
        elapsed = now - bucket.last
        bucket.tokens = min(bucket.burst, bucket.tokens + elapsed * bucket.rate)
        bucket.last = now

    def available(self, resource: str) -> Optional[float]:
        """Tokens currently available, or None if *resource* is unlimited."""
        bucket = self._buckets.get(resource)
        if bucket is None:
            return None
        self._refill(bucket)
        return bucket.tokens

    def try_acquire(self, resource: str, tokens: int = 1) -> bool:
        """Take *tokens* if available right now; never waits."""
        bucket = self._buckets.get(resource)
        if bucket is None:
            return True
        self._refill(bucket)
        if bucket.tokens >= tokens:
            bucket.tokens -= tokens
            return True
        return False

    async def acquire(
        self,
        resource: str,
        tokens: int = 1,
        max_wait: Optional[float] = None,
    ) -> float:
        """Wait until *tokens* are available for *resource*, then take them.

        Returns:
            Seconds spent waiting.

        Raises:
            RateLimitExceededError: If the required wait exceeds *max_wait*.
            ValueError: If *tokens* exceeds the bucket capacity.
        """
        bucket = self._buckets.get(resource)
        if bucket is None:
            return 0.0
        if tokens > bucket.burst:
            raise ValueError(
                f"Requested {tokens} tokens from {resource!r} exceeds burst {bucket.burst:g}"
            )

        waited = 0.0
        while True:
            async with self._lock:
                self._refill(bucket)
                if bucket.tokens >= tokens:
                    bucket.tokens -= tokens
                    return waited
                wait = (tokens - bucket.tokens) / bucket.rate

            if max_wait is not None and waited + wait > max_wait:
                raise RateLimitExceededError(resource, waited + wait)
            logger.debug("Rate limit %s: waiting %.3fs", resource, wait)
            await self._sleep(wait)
            waited += wait
