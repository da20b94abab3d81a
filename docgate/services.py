"""Composition root.

Every shared component (cache, breaker registry, rate limiter, review queue,
audit log) is constructed once here and handed to its consumers explicitly.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable

from docgate.config.schema import GatewayConfig
from docgate.gateway import SecureGateway, TextGenerator
from docgate.resilience import CircuitBreakerRegistry, RateLimiter, RetryExecutor
from docgate.security import (
    ContentSanitizer,
    LoggingNotifier,
    Notifier,
    OutputValidator,
    ReviewQueue,
    SecretScanner,
    SecurityAuditLog,
)
from docgate.sync import (
    CacheBackend,
    ChangeSyncMonitor,
    DocumentCache,
    DocumentMonitor,
    DocumentSource,
    FolderPermissionValidator,
    ResilientDocumentSource,
)


@dataclass
class Services:
    config: GatewayConfig
    source: DocumentSource
    retry: RetryExecutor
    breakers: CircuitBreakerRegistry
    limiter: RateLimiter
    cache: DocumentCache
    notifier: Notifier
    audit: SecurityAuditLog
    permissions: FolderPermissionValidator
    changes: ChangeSyncMonitor
    monitor: DocumentMonitor
    sanitizer: ContentSanitizer
    scanner: SecretScanner
    validator: OutputValidator
    review_queue: ReviewQueue
    gateway: SecureGateway

    async def start(self) -> None:
        await self.cache.initialize()

    async def close(self) -> None:
        await self.cache.shutdown()


def build_services(
    config: GatewayConfig,
    source: DocumentSource,
    generator: TextGenerator,
    *,
    notifier: Notifier | None = None,
    cache_backend: CacheBackend | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Services:
    """Wire the gateway around *source* and *generator*.

    *source* is wrapped in ``ResilientDocumentSource``; pass *clock* and
    *sleep* to drive the resilience layer without real waiting.
    """
    notifier = notifier or LoggingNotifier()
    audit = SecurityAuditLog(config.audit.log_path or None)

    retry = RetryExecutor(config.resilience.retry, sleep=sleep)
    breakers = CircuitBreakerRegistry(config.resilience.default_breaker, clock=clock)
    limiter = RateLimiter(config.resilience.rate_limits, clock=clock, sleep=sleep)

    resilient = ResilientDocumentSource(
        source, retry=retry, breakers=breakers, limiter=limiter, config=config.resilience,
    )
    cache = DocumentCache(config.cache, backend=cache_backend)
    permissions = FolderPermissionValidator(
        resilient, config.sync.monitored_folders, notifier=notifier, audit=audit,
    )

    sanitizer = ContentSanitizer(config.sanitizer)
    scanner = SecretScanner(config.scanner)
    validator = OutputValidator(config.validator, scanner)
    review_queue = ReviewQueue(
        config.review.queue_path or None,
        notifier=notifier,
        audit=audit,
        max_retained=config.review.max_retained,
    )

    return Services(
        config=config,
        source=resilient,
        retry=retry,
        breakers=breakers,
        limiter=limiter,
        cache=cache,
        notifier=notifier,
        audit=audit,
        permissions=permissions,
        changes=ChangeSyncMonitor(resilient, cache, permissions, config.sync),
        monitor=DocumentMonitor(
            resilient, cache, permissions, scanner,
            limits=config.scan_limits, sync=config.sync, notifier=notifier, audit=audit,
        ),
        sanitizer=sanitizer,
        scanner=scanner,
        validator=validator,
        review_queue=review_queue,
        gateway=SecureGateway(
            sanitizer=sanitizer,
            scanner=scanner,
            validator=validator,
            review_queue=review_queue,
            generator=generator,
            retry=retry,
            breakers=breakers,
            limiter=limiter,
            audit=audit,
            resilience=config.resilience,
        ),
    )


@asynccontextmanager
async def open_services(
    config: GatewayConfig,
    source: DocumentSource,
    generator: TextGenerator,
    **kwargs,
) -> AsyncGenerator[Services, None]:
    services = build_services(config, source, generator, **kwargs)
    await services.start()
    try:
        yield services
    finally:
        await services.close()
