"""Full scans and content fetches for whitelisted documents.

Used for the first run (when no change cursor exists yet) and to load the
documents named by an incremental change list.  Every fetched document is
size-checked and secret-scanned; only redacted content is cached or
returned.  A document that fails to load is recorded as skipped and the
batch carries on.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from docgate.config.schema import ScanLimits, SyncConfig
from docgate.security.audit import AuditEvent, SecurityAuditLog
from docgate.security.notifications import LoggingNotifier, Notifier, SecurityAlert, send_alert
from docgate.security.secrets import ScanResult, SecretScanner
from docgate.security.types import Severity

from .cache import DocumentCache, DocumentMetadata
from .models import (
    ChangedDocument,
    ChangeType,
    Document,
    DocumentType,
    RemoteFile,
    ScanReport,
    SkippedDocument,
)
from .permissions import FolderPermissionValidator
from .source import DocumentSource

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentMonitor:
    """Loads whitelisted documents with caching, size limits and secret redaction."""

    def __init__(
        self,
        source: DocumentSource,
        cache: DocumentCache,
        validator: FolderPermissionValidator,
        scanner: SecretScanner,
        *,
        limits: ScanLimits | None = None,
        sync: SyncConfig | None = None,
        notifier: Notifier | None = None,
        audit: SecurityAuditLog | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.source = source
        self.cache = cache
        self.validator = validator
        self.scanner = scanner
        self.limits = limits or ScanLimits()
        self.sync = sync or SyncConfig()
        self.notifier = notifier or LoggingNotifier()
        self.audit = audit or SecurityAuditLog()
        self._clock = clock

    async def scan_for_changes(
        self,
        window_days: Optional[int] = None,
        max_documents: Optional[int] = None,
    ) -> ScanReport:
        """Load documents modified within the window from every whitelisted folder.

        Raises:
            PermissionViolationError: If folder validation fails; nothing is read.
        """
        await self.validator.ensure_valid()

        window = window_days or self.limits.window_days
        limit = max_documents or self.limits.max_documents
        cutoff = self._clock() - timedelta(days=window)

        candidates: dict[str, tuple[RemoteFile, str]] = {}
        report = ScanReport()
        for folder in self.validator.whitelisted_folders():
            files = await self.source.list_files(
                folder.id, modified_after=cutoff,
                mime_types=self.sync.monitored_mime_types, limit=limit,
            )
            logger.info("Found %d file(s) in %s", len(files), folder.path)
            for file in files:
                candidates.setdefault(file.id, (file, folder.path))
            if len(candidates) >= limit:
                logger.warning("Reached maximum document limit: %d", limit)
                break

        ordered = sorted(candidates.values(), key=lambda c: c[0].modified_time, reverse=True)
        if len(ordered) > limit:
            report.truncated = True
            ordered = ordered[:limit]

        for file, folder_path in ordered:
            await self._load(file, folder_path, report)
        self._enforce_digest_limit(report)
        logger.info(
            "Scan complete: %d document(s), %d skipped, %d cache hit(s)",
            len(report.documents), len(report.skipped), report.cache_hits,
        )
        return report

    async def fetch_changed(self, changes: Iterable[ChangedDocument]) -> ScanReport:
        """Load content for created/modified entries of a change list."""
        report = ScanReport()
        for change in changes:
            if change.change_type is ChangeType.DELETED or change.file is None:
                continue
            await self._load(change.file, change.folder_path, report)
        self._enforce_digest_limit(report)
        return report

    # -- internals ------------------------------------------------------------

    async def _load(self, file: RemoteFile, folder_path: str, report: ScanReport) -> None:
        try:
            document = await self._load_document(file, folder_path, report)
        except Exception as exc:
            logger.error("Failed to load document %s (%s): %s", file.name, file.id, exc)
            report.skipped.append(SkippedDocument(file.id, file.name, f"Load failed: {exc}"))
            return
        if document is not None:
            report.documents.append(document)

    async def _load_document(
        self,
        file: RemoteFile,
        folder_path: str,
        report: ScanReport,
    ) -> Optional[Document]:
        cached = await self.cache.get(file.id)
        if cached is not None and cached.modified_time == file.modified_time:
            report.cache_hits += 1
            return self._document(
                file, folder_path, cached.content,
                secrets_detected=cached.secrets_redacted > 0,
                secrets_redacted=cached.secrets_redacted,
            )

        content = await self.source.fetch_content(file.id, file.mime_type)
        size = len(content.encode("utf-8"))
        if size > self.limits.max_document_bytes:
            logger.warning(
                "Document %s rejected: %d bytes exceeds %d",
                file.name, size, self.limits.max_document_bytes,
            )
            report.skipped.append(SkippedDocument(
                file.id, file.name, f"Document exceeds size limit ({size} bytes)",
            ))
            return None

        scan = self.scanner.scan(content)
        if scan.has_secrets:
            report.secrets_found += scan.total_found
            await self._report_secrets(file, folder_path, scan)
            content = scan.redacted_content

        await self.cache.set(
            file.id, file.name, content, file.mime_type, file.modified_time,
            secrets_redacted=scan.total_found,
        )
        await self.cache.set_metadata(DocumentMetadata(
            id=file.id,
            name=file.name,
            mime_type=file.mime_type,
            modified_time=file.modified_time,
            folder_path=folder_path,
        ))
        return self._document(
            file, folder_path, content,
            secrets_detected=scan.has_secrets,
            secrets_redacted=scan.total_found,
        )

    def _document(
        self,
        file: RemoteFile,
        folder_path: str,
        content: str,
        *,
        secrets_detected: bool = False,
        secrets_redacted: int = 0,
    ) -> Document:
        return Document(
            id=file.id,
            name=file.name,
            content=content,
            folder_path=folder_path,
            modified_time=file.modified_time,
            created_time=file.created_time,
            type=DocumentType.from_mime(file.mime_type),
            web_view_link=file.web_view_link,
            secrets_detected=secrets_detected,
            secrets_redacted=secrets_redacted,
        )

    async def _report_secrets(self, file: RemoteFile, folder_path: str, scan: ScanResult) -> None:
        logger.error(
            "Secrets detected in document %s (%s): %d found, %d critical, types=%s",
            file.name, file.id, scan.total_found, scan.critical_found, ", ".join(scan.types),
        )
        await send_alert(self.notifier, SecurityAlert(
            title="Secrets detected in source document",
            message=f"{file.name} contains {scan.total_found} secret(s); content was redacted.",
            severity=Severity.CRITICAL,
            category="secrets",
            details={
                "document_id": file.id,
                "folder_path": folder_path,
                "link": file.web_view_link,
                "types": scan.types,
            },
        ))
        await self.audit.record(
            AuditEvent.SECRET_DETECTED_IN_DOCUMENT,
            document_id=file.id,
            document_name=file.name,
            secrets=[f.to_dict() for f in scan.secrets],
        )

    def _enforce_digest_limit(self, report: ScanReport) -> None:
        if report.total_bytes <= self.limits.max_digest_bytes:
            return
        newest_first = sorted(report.documents, key=lambda d: d.modified_time, reverse=True)
        accepted, total = [], 0
        for doc in newest_first:
            if total + doc.size_bytes <= self.limits.max_digest_bytes:
                accepted.append(doc)
                total += doc.size_bytes
            else:
                report.skipped.append(SkippedDocument(doc.id, doc.name, "Digest size limit reached"))
        logger.info("Accepted %d/%d document(s) within digest limit", len(accepted), len(newest_first))
        report.documents = accepted
        report.truncated = True
