"""
Document source capability interface.

Every upstream call of the sync subsystem goes through ``DocumentSource``,
a narrow async interface (list / get / export / watch) so the concrete
transport can be swapped or faked.

Implementations:
    InMemoryDocumentSource  - dict-backed source for development and tests
    ResilientDocumentSource - decorator adding rate limiting, circuit
                              breaking and retry around any source
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from docgate.config.schema import FOLDER_MIME, ResilienceConfig
from docgate.errors import DocumentNotFoundError, InvalidCursorError
from docgate.resilience import CircuitBreakerRegistry, RateLimiter, RetryExecutor

from .models import ChangePage, RemoteFile

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentSource(ABC):
    """
    Abstract upstream document store.

    All methods are async.  Implementations raise ``InvalidCursorError`` for
    a rejected change cursor and ``DocumentNotFoundError`` for unknown ids;
    any other exception is treated as a transient upstream failure.
    """

    @abstractmethod
    async def get_start_cursor(self) -> str:
        """Return a cursor positioned at "now" in the change feed."""

    @abstractmethod
    async def list_changes(self, cursor: str, page_size: int = 100) -> ChangePage:
        """
        Return one page of changes starting at *cursor*.

        Raises:
            InvalidCursorError: If the upstream no longer accepts *cursor*.
        """

    @abstractmethod
    async def fetch_content(self, file_id: str, mime_type: str) -> str:
        """Export the content of a document as plain text."""

    @abstractmethod
    async def list_folders(self) -> list[RemoteFile]:
        """List every folder visible to the current credential."""

    @abstractmethod
    async def resolve_parent(self, folder_id: str) -> Optional[RemoteFile]:
        """Fetch metadata for a single folder, or None if it is not visible."""

    @abstractmethod
    async def list_files(
        self,
        folder_id: str,
        modified_after: Optional[datetime] = None,
        mime_types: Sequence[str] = (),
        limit: int = 100,
    ) -> list[RemoteFile]:
        """List non-trashed files directly inside *folder_id*, newest first."""


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryDocumentSource(DocumentSource):
    """
    Dict-backed document source.

    Change pages are registered per cursor; a cursor in ``invalid_cursors``
    raises ``InvalidCursorError``.  ``calls`` counts invocations per method,
    which lets callers verify quota consumption.
    """

    def __init__(self, start_cursor: str = "1") -> None:
        self.start_cursor = start_cursor
        self.folders: dict[str, RemoteFile] = {}
        self.files: dict[str, RemoteFile] = {}
        self.contents: dict[str, str] = {}
        self.pages: dict[str, ChangePage] = {}
        self.invalid_cursors: set[str] = set()
        self.calls: Counter[str] = Counter()
        self._failures: dict[str, list[BaseException]] = {}

    # -- fixture helpers ----------------------------------------------------

    def add_folder(self, folder_id: str, name: str, parent: Optional[str] = None) -> RemoteFile:
        folder = RemoteFile(
            id=folder_id,
            name=name,
            mime_type=FOLDER_MIME,
            modified_time=datetime.now().astimezone(),
            parents=(parent,) if parent else (),
        )
        self.folders[folder_id] = folder
        return folder

    def add_file(self, file: RemoteFile, content: str = "") -> RemoteFile:
        self.files[file.id] = file
        self.contents[file.id] = content
        return file

    def add_page(self, cursor: str, page: ChangePage) -> None:
        self.pages[cursor] = page

    def fail_next(self, method: str, *errors: BaseException) -> None:
        """Make the next ``len(errors)`` calls of *method* raise, in order."""
        self._failures.setdefault(method, []).extend(errors)

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    # -- DocumentSource -----------------------------------------------------

    async def get_start_cursor(self) -> str:
        self._enter("get_start_cursor")
        return self.start_cursor

    async def list_changes(self, cursor: str, page_size: int = 100) -> ChangePage:
        self._enter("list_changes")
        if cursor in self.invalid_cursors:
            raise InvalidCursorError(cursor)
        page = self.pages.get(cursor)
        if page is None:
            return ChangePage(entries=[], new_start_cursor=cursor)
        return page

    async def fetch_content(self, file_id: str, mime_type: str) -> str:
        self._enter("fetch_content")
        if file_id not in self.contents:
            raise DocumentNotFoundError(file_id)
        return self.contents[file_id]

    async def list_folders(self) -> list[RemoteFile]:
        self._enter("list_folders")
        return list(self.folders.values())

    async def resolve_parent(self, folder_id: str) -> Optional[RemoteFile]:
        self._enter("resolve_parent")
        return self.folders.get(folder_id)

    async def list_files(
        self,
        folder_id: str,
        modified_after: Optional[datetime] = None,
        mime_types: Sequence[str] = (),
        limit: int = 100,
    ) -> list[RemoteFile]:
        self._enter("list_files")
        matches = [
            f for f in self.files.values()
            if folder_id in f.parents
            and not f.trashed
            and (modified_after is None or f.modified_time >= modified_after)
            and (not mime_types or f.mime_type in mime_types)
        ]
        matches.sort(key=lambda f: f.modified_time, reverse=True)
        return matches[:limit]


# ---------------------------------------------------------------------------
# Resilient decorator
# ---------------------------------------------------------------------------

METADATA_RESOURCE = "source.metadata"
EXPORT_RESOURCE = "source.export"


class ResilientDocumentSource(DocumentSource):
    """
    Wraps a source so every call is rate limited, guarded by a circuit
    breaker and retried with backoff.

    Metadata reads and content exports use separate rate-limit classes and
    separate breakers since their upstream quotas differ.  The breaker
    wraps the retry loop: one exhausted retry sequence counts as one
    breaker failure.
    """

    def __init__(
        self,
        inner: DocumentSource,
        *,
        retry: RetryExecutor,
        breakers: CircuitBreakerRegistry,
        limiter: RateLimiter,
        config: ResilienceConfig | None = None,
    ) -> None:
        self.inner = inner
        self.retry = retry
        self.breakers = breakers
        self.limiter = limiter
        self.config = config or ResilienceConfig()

    async def _call(
        self,
        resource: str,
        label: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        breaker = self.breakers.get_or_create(resource, self.config.breaker_policy(resource))

        async def attempt() -> T:
            await self.limiter.acquire(resource)
            return await operation()

        async def retried() -> T:
            result = await self.retry.execute(attempt, label)
            return result.unwrap()

        return await breaker.execute(retried)

    async def get_start_cursor(self) -> str:
        return await self._call(METADATA_RESOURCE, "get_start_cursor", self.inner.get_start_cursor)

    async def list_changes(self, cursor: str, page_size: int = 100) -> ChangePage:
        return await self._call(
            METADATA_RESOURCE, "list_changes",
            lambda: self.inner.list_changes(cursor, page_size),
        )

    async def fetch_content(self, file_id: str, mime_type: str) -> str:
        return await self._call(
            EXPORT_RESOURCE, f"fetch_content({file_id})",
            lambda: self.inner.fetch_content(file_id, mime_type),
        )

    async def list_folders(self) -> list[RemoteFile]:
        return await self._call(METADATA_RESOURCE, "list_folders", self.inner.list_folders)

    async def resolve_parent(self, folder_id: str) -> Optional[RemoteFile]:
        return await self._call(
            METADATA_RESOURCE, f"resolve_parent({folder_id})",
            lambda: self.inner.resolve_parent(folder_id),
        )

    async def list_files(
        self,
        folder_id: str,
        modified_after: Optional[datetime] = None,
        mime_types: Sequence[str] = (),
        limit: int = 100,
    ) -> list[RemoteFile]:
        return await self._call(
            METADATA_RESOURCE, f"list_files({folder_id})",
            lambda: self.inner.list_files(folder_id, modified_after, mime_types, limit),
        )
