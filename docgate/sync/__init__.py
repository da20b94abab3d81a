"""Quota-aware document synchronization -- source interface, cache, permissions, change feed."""

from .cache import (
    CacheBackend,
    CachedDocument,
    CacheStats,
    DocumentCache,
    DocumentMetadata,
    InMemoryCacheBackend,
    RedisCacheBackend,
)
from .changes import ChangeSyncMonitor
from .models import (
    ChangedDocument,
    ChangeEntry,
    ChangePage,
    ChangesScanResult,
    ChangeType,
    Document,
    DocumentType,
    FolderInfo,
    RemoteFile,
    ScanReport,
    SkippedDocument,
)
from .monitor import DocumentMonitor
from .permissions import FolderPermissionValidator, PermissionValidationResult, matches_pattern
from .source import DocumentSource, InMemoryDocumentSource, ResilientDocumentSource

__all__ = [
    "CacheBackend",
    "CacheStats",
    "CachedDocument",
    "ChangeEntry",
    "ChangePage",
    "ChangeSyncMonitor",
    "ChangeType",
    "ChangedDocument",
    "ChangesScanResult",
    "Document",
    "DocumentCache",
    "DocumentMetadata",
    "DocumentMonitor",
    "DocumentSource",
    "DocumentType",
    "FolderInfo",
    "FolderPermissionValidator",
    "InMemoryCacheBackend",
    "InMemoryDocumentSource",
    "PermissionValidationResult",
    "RedisCacheBackend",
    "RemoteFile",
    "ResilientDocumentSource",
    "ScanReport",
    "SkippedDocument",
    "matches_pattern",
]
