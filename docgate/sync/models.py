"""Shared value types for the document synchronization subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from docgate.config.schema import GOOGLE_DOC_MIME
from docgate.errors import ErrorKind


class DocumentType(str, Enum):
    GOOGLE_DOC = "google-doc"
    MARKDOWN = "markdown"
    TEXT = "text"

    @classmethod
    def from_mime(cls, mime_type: str) -> "DocumentType":
        if mime_type == GOOGLE_DOC_MIME:
            return cls.GOOGLE_DOC
        if mime_type == "text/markdown":
            return cls.MARKDOWN
        return cls.TEXT


class ChangeType(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


# ---------------------------------------------------------------------------
# Upstream records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RemoteFile:
    """File metadata as reported by the document source."""

    id: str
    name: str
    mime_type: str
    modified_time: datetime
    created_time: Optional[datetime] = None
    parents: tuple[str, ...] = ()
    trashed: bool = False
    web_view_link: str = ""


@dataclass(frozen=True)
class ChangeEntry:
    """One entry of an upstream change feed page."""

    file_id: str
    removed: bool = False
    file: Optional[RemoteFile] = None


@dataclass(frozen=True)
class ChangePage:
    """One page of the change feed.

    Exactly one of ``next_cursor`` (more pages follow) or
    ``new_start_cursor`` (last page) is normally set.
    """

    entries: list[ChangeEntry] = field(default_factory=list)
    next_cursor: Optional[str] = None
    new_start_cursor: Optional[str] = None


@dataclass(frozen=True)
class FolderInfo:
    """A folder visible to the current credential, with its resolved path."""

    id: str
    name: str
    path: str
    parents: tuple[str, ...] = ()
    web_view_link: str = ""


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@dataclass
class Document:
    """A fetched document. Content is always redacted before it is cached."""

    id: str
    name: str
    content: str
    folder_path: str
    modified_time: datetime
    type: DocumentType = DocumentType.TEXT
    created_time: Optional[datetime] = None
    web_view_link: str = ""
    secrets_detected: bool = False
    secrets_redacted: int = 0

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass(frozen=True)
class ChangedDocument:
    """A document-level change derived from the change feed."""

    file_id: str
    change_type: ChangeType
    name: str = ""
    mime_type: str = ""
    modified_time: Optional[datetime] = None
    folder_path: str = ""
    file: Optional[RemoteFile] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_id": self.file_id,
            "change_type": self.change_type.value,
            "name": self.name,
            "mime_type": self.mime_type,
            "modified_time": self.modified_time.isoformat() if self.modified_time else None,
            "folder_path": self.folder_path,
        }


@dataclass
class ChangesScanResult:
    changes: list[ChangedDocument] = field(default_factory=list)
    new_cursor: Optional[str] = None
    is_first_run: bool = False
    pages_fetched: int = 0
    entries_seen: int = 0
    entries_skipped: int = 0


@dataclass(frozen=True)
class SkippedDocument:
    """A document that failed in a batch and was left out of the result."""

    file_id: str
    name: str
    reason: str
    kind: ErrorKind = ErrorKind.PARTIAL_FAILURE


@dataclass
class ScanReport:
    """Outcome of a full scan or a change fetch."""

    documents: list[Document] = field(default_factory=list)
    skipped: list[SkippedDocument] = field(default_factory=list)
    cache_hits: int = 0
    secrets_found: int = 0
    truncated: bool = False

    @property
    def total_bytes(self) -> int:
        return sum(d.size_bytes for d in self.documents)
