"""
Document cache with a networked primary and an in-process fallback.

One ``CacheBackend`` interface, two implementations:

    RedisCacheBackend     - redis.asyncio, TTLs enforced by Redis
    InMemoryCacheBackend  - dict with expiry timestamps, purged on read

``DocumentCache.initialize()`` picks the backend once: Redis when caching is
enabled and the server answers a ping, otherwise the in-memory map.  After
that every storage error is logged and treated as a miss (reads) or a no-op
(writes); the cache never fails a sync.

Keys (with the configured prefix, default ``gdoc:``):
    doc:<file_id>      cached content        content TTL (default 15 min)
    meta:<file_id>     cached metadata       metadata TTL (default 5 min)
    changes:<scope>    change cursor         no expiry
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

import redis.asyncio as aioredis

from docgate.config.schema import CacheConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class CacheBackend(ABC):
    """Minimal key-value protocol the document cache relies on."""

    name: str = "backend"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for *key*, or None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Store *value*; *ttl* in seconds, None for no expiry."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete *keys*, returning how many existed."""

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """List live keys starting with *prefix*."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the backend is reachable."""

    async def memory_usage(self) -> str:
        return "unknown"

    async def close(self) -> None:
        return None


class InMemoryCacheBackend(CacheBackend):
    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                removed += 1
            self._data.pop(key, None)
        return removed

    async def keys(self, prefix: str) -> list[str]:
        return [k for k in list(self._data) if k.startswith(prefix) and self._live(k) is not None]

    async def ping(self) -> bool:
        return True

    async def memory_usage(self) -> str:
        size = sum(sys.getsizeof(k) + sys.getsizeof(v) for k, (v, _) in self._data.items())
        return f"{size / 1024:.1f}K"


class RedisCacheBackend(CacheBackend):
    name = "redis"

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, connect_timeout: float = 2.0) -> "RedisCacheBackend":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=connect_timeout,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[str]:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        await self._client.set(key, value, ex=ttl)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def keys(self, prefix: str) -> list[str]:
        return [k async for k in self._client.scan_iter(match=f"{prefix}*")]

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def memory_usage(self) -> str:
        info = await self._client.info("memory")
        return str(info.get("used_memory_human", "unknown"))

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Cached records
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CachedDocument:
    id: str
    name: str
    content: str
    mime_type: str
    modified_time: datetime
    cached_at: datetime
    secrets_redacted: int = 0

    def to_json(self) -> str:
        data = asdict(self)
        data["modified_time"] = self.modified_time.isoformat()
        data["cached_at"] = self.cached_at.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "CachedDocument":
        data = json.loads(raw)
        data["modified_time"] = datetime.fromisoformat(data["modified_time"])
        data["cached_at"] = datetime.fromisoformat(data["cached_at"])
        return cls(**data)


@dataclass(frozen=True)
class DocumentMetadata:
    id: str
    name: str
    mime_type: str
    modified_time: datetime
    folder_path: str = ""

    def to_json(self) -> str:
        data = asdict(self)
        data["modified_time"] = self.modified_time.isoformat()
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "DocumentMetadata":
        data = json.loads(raw)
        data["modified_time"] = datetime.fromisoformat(data["modified_time"])
        return cls(**data)


@dataclass(frozen=True)
class CacheStats:
    backend: str
    hits: int
    misses: int
    total_cached: int
    memory_usage: str

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 4),
            "total_cached": self.total_cached,
            "memory_usage": self.memory_usage,
        }


# ---------------------------------------------------------------------------
# DocumentCache
# ---------------------------------------------------------------------------

class DocumentCache:
    """Content, metadata and change-cursor storage shared by the sync services."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        backend: CacheBackend | None = None,
        redis_factory: Callable[[str, float], CacheBackend] = RedisCacheBackend.from_url,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config or CacheConfig()
        self._backend = backend
        self._redis_factory = redis_factory
        self._clock = clock
        self.hits = 0
        self.misses = 0
        self._init_lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return self._backend.name if self._backend else "uninitialized"

    async def initialize(self) -> CacheBackend:
        """Select the backend. Idempotent and safe to call concurrently."""
        if self._backend is not None:
            return self._backend
        async with self._init_lock:
            if self._backend is None:
                self._backend = await self._select_backend()
        return self._backend

    async def _select_backend(self) -> CacheBackend:
        if self.config.enabled:
            candidate = self._redis_factory(self.config.redis_url, self.config.connect_timeout)
            try:
                if await candidate.ping():
                    logger.info("Document cache using Redis at %s", self.config.redis_url)
                    return candidate
            except Exception as exc:
                logger.warning("Redis unavailable (%s); using in-memory document cache", exc)
            try:
                await candidate.close()
            except Exception:
                logger.debug("Error closing unused Redis client", exc_info=True)
        else:
            logger.info("Redis caching disabled; using in-memory document cache")
        return InMemoryCacheBackend()

    # -- keys -----------------------------------------------------------------

    def _key(self, kind: str, ident: str) -> str:
        return f"{self.config.key_prefix}{kind}:{ident}"

    # -- content --------------------------------------------------------------

    async def get(self, file_id: str) -> Optional[CachedDocument]:
        backend = await self.initialize()
        try:
            raw = await backend.get(self._key("doc", file_id))
            doc = CachedDocument.from_json(raw) if raw else None
        except Exception as exc:
            logger.error("Cache get failed for %s: %s", file_id, exc)
            doc = None

        if doc is not None:
            age = (self._clock() - doc.cached_at).total_seconds()
            if age >= self.config.content_ttl_seconds:
                await self.invalidate(file_id)
                doc = None

        if doc is None:
            self.misses += 1
            return None
        self.hits += 1
        return doc

    async def set(
        self,
        file_id: str,
        name: str,
        content: str,
        mime_type: str,
        modified_time: datetime,
        secrets_redacted: int = 0,
    ) -> None:
        backend = await self.initialize()
        doc = CachedDocument(
            id=file_id,
            name=name,
            content=content,
            mime_type=mime_type,
            modified_time=modified_time,
            cached_at=self._clock(),
            secrets_redacted=secrets_redacted,
        )
        try:
            await backend.set(self._key("doc", file_id), doc.to_json(), self.config.content_ttl_seconds)
        except Exception as exc:
            logger.error("Cache set failed for %s: %s", file_id, exc)

    # -- metadata -------------------------------------------------------------

    async def get_metadata(self, file_id: str) -> Optional[DocumentMetadata]:
        backend = await self.initialize()
        try:
            raw = await backend.get(self._key("meta", file_id))
            return DocumentMetadata.from_json(raw) if raw else None
        except Exception as exc:
            logger.error("Cache metadata get failed for %s: %s", file_id, exc)
            return None

    async def set_metadata(self, metadata: DocumentMetadata) -> None:
        backend = await self.initialize()
        try:
            await backend.set(
                self._key("meta", metadata.id), metadata.to_json(), self.config.metadata_ttl_seconds,
            )
        except Exception as exc:
            logger.error("Cache metadata set failed for %s: %s", metadata.id, exc)

    # -- invalidation ---------------------------------------------------------

    async def invalidate(self, file_id: str) -> None:
        await self.invalidate_many([file_id])

    async def invalidate_many(self, file_ids: Iterable[str]) -> int:
        keys = []
        for file_id in file_ids:
            keys.append(self._key("doc", file_id))
            keys.append(self._key("meta", file_id))
        if not keys:
            return 0
        backend = await self.initialize()
        try:
            return await backend.delete(*keys)
        except Exception as exc:
            logger.error("Cache invalidation failed: %s", exc)
            return 0

    # -- change cursors -------------------------------------------------------

    async def get_change_token(self, scope: str = "global") -> Optional[str]:
        backend = await self.initialize()
        try:
            return await backend.get(self._key("changes", scope))
        except Exception as exc:
            logger.error("Failed to read change token for %s: %s", scope, exc)
            return None

    async def set_change_token(self, scope: str, token: str) -> None:
        backend = await self.initialize()
        try:
            await backend.set(self._key("changes", scope), token, None)
        except Exception as exc:
            logger.error("Failed to store change token for %s: %s", scope, exc)

    async def delete_change_token(self, scope: str = "global") -> None:
        backend = await self.initialize()
        try:
            await backend.delete(self._key("changes", scope))
        except Exception as exc:
            logger.error("Failed to delete change token for %s: %s", scope, exc)

    # -- housekeeping ---------------------------------------------------------

    async def get_stats(self) -> CacheStats:
        backend = await self.initialize()
        try:
            total = len(await backend.keys(self._key("doc", "")))
            memory = await backend.memory_usage()
        except Exception as exc:
            logger.error("Failed to collect cache stats: %s", exc)
            total, memory = 0, "unknown"
        return CacheStats(
            backend=backend.name,
            hits=self.hits,
            misses=self.misses,
            total_cached=total,
            memory_usage=memory,
        )

    async def clear(self) -> int:
        """Remove every key under the prefix, cursors included."""
        backend = await self.initialize()
        try:
            keys = await backend.keys(self.config.key_prefix)
            removed = await backend.delete(*keys) if keys else 0
        except Exception as exc:
            logger.error("Cache clear failed: %s", exc)
            return 0
        self.hits = 0
        self.misses = 0
        logger.info("Cleared %d cache entries", removed)
        return removed

    async def health_check(self) -> bool:
        backend = await self.initialize()
        try:
            return await backend.ping()
        except Exception as exc:
            logger.warning("Cache health check failed: %s", exc)
            return False

    async def shutdown(self) -> None:
        if self._backend is not None:
            try:
                await self._backend.close()
            except Exception as exc:
                logger.warning("Error closing cache backend: %s", exc)
            self._backend = None
