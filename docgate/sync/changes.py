"""Incremental change detection over the document source change feed.

The stored cursor for a scope is advanced only after the whole page walk
succeeded, so a failure mid-walk replays the same changes on the next run
instead of losing them.  A cursor the upstream rejects is replaced by a
fresh start cursor and reported as a first run.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from docgate.config.schema import SyncConfig
from docgate.errors import FatalError, InvalidCursorError

from .cache import DocumentCache
from .models import ChangedDocument, ChangeEntry, ChangesScanResult, ChangeType
from .permissions import FolderPermissionValidator
from .source import DocumentSource

logger = logging.getLogger(__name__)

_CREATED_TOLERANCE = timedelta(seconds=1)


class ChangeSyncMonitor:
    """Turns the upstream change feed into a filtered list of document changes."""

    def __init__(
        self,
        source: DocumentSource,
        cache: DocumentCache,
        validator: FolderPermissionValidator,
        config: SyncConfig | None = None,
    ) -> None:
        self.source = source
        self.cache = cache
        self.validator = validator
        self.config = config or SyncConfig()

    async def get_changes(self) -> ChangesScanResult:
        """Return changes since the stored cursor and advance it.

        Raises:
            PermissionViolationError: If folder validation fails; nothing is read.
        """
        await self.validator.ensure_valid()

        scope = self.config.scope
        cursor = await self.cache.get_change_token(scope)
        if cursor is None:
            logger.info("No change cursor for scope %r; starting fresh", scope)
            return await self._start_fresh(scope)

        try:
            result = await self._walk(cursor)
        except InvalidCursorError:
            logger.warning("Change cursor for scope %r rejected; resetting", scope)
            return await self._start_fresh(scope)

        await self.cache.set_change_token(scope, result.new_cursor)
        logger.info(
            "Change sync: %d change(s) over %d page(s), %d entr(ies) skipped",
            len(result.changes), result.pages_fetched, result.entries_skipped,
        )
        return result

    async def reset_change_token(self) -> str:
        """Discard the stored cursor and persist a fresh start cursor."""
        scope = self.config.scope
        await self.cache.delete_change_token(scope)
        result = await self._start_fresh(scope)
        assert result.new_cursor is not None
        return result.new_cursor

    async def get_token_info(self) -> dict:
        token = await self.cache.get_change_token(self.config.scope)
        return {"scope": self.config.scope, "has_token": token is not None, "token": token}

    # -- internals ------------------------------------------------------------

    async def _start_fresh(self, scope: str) -> ChangesScanResult:
        start = await self.source.get_start_cursor()
        await self.cache.set_change_token(scope, start)
        return ChangesScanResult(new_cursor=start, is_first_run=True)

    async def _walk(self, cursor: str) -> ChangesScanResult:
        result = ChangesScanResult()
        current: Optional[str] = cursor
        final = cursor

        while current is not None:
            if result.pages_fetched >= self.config.max_pages:
                raise FatalError(
                    f"Change feed exceeded {self.config.max_pages} pages; cursor not advanced",
                    details={"cursor": cursor},
                )
            page = await self.source.list_changes(current, self.config.page_size)
            result.pages_fetched += 1

            touched = []
            for entry in page.entries:
                result.entries_seen += 1
                change = self._classify(entry)
                if change is None:
                    result.entries_skipped += 1
                    continue
                result.changes.append(change)
                touched.append(change.file_id)
            if touched:
                await self.cache.invalidate_many(touched)

            if page.new_start_cursor:
                final = page.new_start_cursor
            elif page.next_cursor:
                final = page.next_cursor
            current = page.next_cursor

        result.new_cursor = final
        return result

    def _classify(self, entry: ChangeEntry) -> Optional[ChangedDocument]:
        file = entry.file
        if file is None:
            if entry.removed:
                return ChangedDocument(file_id=entry.file_id, change_type=ChangeType.DELETED)
            return None

        if file.mime_type not in self.config.monitored_mime_types:
            return None

        folder_path = self._whitelisted_parent_path(file.parents)
        if folder_path is None:
            logger.debug("Skipping %s: not in a whitelisted folder", entry.file_id)
            return None

        if entry.removed or file.trashed:
            change_type = ChangeType.DELETED
        elif file.created_time and abs(file.modified_time - file.created_time) <= _CREATED_TOLERANCE:
            change_type = ChangeType.CREATED
        else:
            change_type = ChangeType.MODIFIED

        return ChangedDocument(
            file_id=entry.file_id,
            change_type=change_type,
            name=file.name,
            mime_type=file.mime_type,
            modified_time=file.modified_time,
            folder_path=folder_path,
            file=file,
        )

    def _whitelisted_parent_path(self, parents: tuple[str, ...]) -> Optional[str]:
        for parent_id in parents:
            if self.validator.is_folder_id_whitelisted(parent_id):
                return self.validator.folder_path(parent_id)
        return None
