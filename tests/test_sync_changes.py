"""Tests for docgate.sync.changes -- cursor handling and change classification."""

from datetime import timedelta

import pytest

from docgate.config import CacheConfig, SyncConfig
from docgate.errors import FatalError, PermissionViolationError
from docgate.sync import (
    ChangeEntry,
    ChangePage,
    ChangeSyncMonitor,
    ChangeType,
    DocumentCache,
    FolderPermissionValidator,
    InMemoryCacheBackend,
)
from conftest import NOW, make_file


@pytest.fixture
def cache():
    return DocumentCache(CacheConfig(), backend=InMemoryCacheBackend())


@pytest.fixture
def monitor(source, cache, notifier, audit):
    del source.folders["mkt"]
    validator = FolderPermissionValidator(source, ["Engineering/**"], notifier=notifier, audit=audit)
    return ChangeSyncMonitor(source, cache, validator, SyncConfig(monitored_folders=["Engineering/**"]))


class TestFirstRun:
    """No stored cursor."""

    @pytest.mark.asyncio
    async def test_first_run_persists_start_cursor(self, monitor, source, cache):
        result = await monitor.get_changes()
        assert result.is_first_run
        assert result.changes == []
        assert result.new_cursor == "100"
        assert await cache.get_change_token("global") == "100"
        assert source.calls["list_changes"] == 0

    @pytest.mark.asyncio
    async def test_rejected_cursor_restarts(self, monitor, source, cache):
        await cache.set_change_token("global", "7")
        source.invalid_cursors.add("7")
        result = await monitor.get_changes()
        assert result.is_first_run
        assert await cache.get_change_token("global") == "100"


class TestClassification:
    """Entries are filtered and typed."""

    @pytest.mark.asyncio
    async def test_mixed_page(self, monitor, source, cache):
        fresh = NOW - timedelta(minutes=5)
        source.add_page("10", ChangePage(
            entries=[
                ChangeEntry("doc-new", file=make_file("doc-new", "alpha", modified=fresh, created=fresh)),
                ChangeEntry("doc-1", file=source.files["doc-1"]),
                ChangeEntry("doc-gone", removed=True),
                ChangeEntry("doc-bin", file=make_file("doc-bin", "specs", trashed=True)),
                ChangeEntry("doc-hr", file=make_file("doc-hr", "hr-folder")),
                ChangeEntry("img", file=make_file("img", "alpha", mime_type="image/png")),
                ChangeEntry("orphan"),
            ],
            new_start_cursor="20",
        ))
        await cache.set_change_token("global", "10")

        result = await monitor.get_changes()

        by_id = {c.file_id: c for c in result.changes}
        assert by_id["doc-new"].change_type is ChangeType.CREATED
        assert by_id["doc-1"].change_type is ChangeType.MODIFIED
        assert by_id["doc-1"].folder_path == "Engineering/Projects/Alpha"
        assert by_id["doc-gone"].change_type is ChangeType.DELETED
        assert by_id["doc-bin"].change_type is ChangeType.DELETED
        assert set(by_id) == {"doc-new", "doc-1", "doc-gone", "doc-bin"}
        assert result.entries_seen == 7
        assert result.entries_skipped == 3
        assert not result.is_first_run
        assert await cache.get_change_token("global") == "20"

    @pytest.mark.asyncio
    async def test_changed_documents_invalidated(self, monitor, source, cache):
        await cache.set("doc-1", "doc-1.doc", "stale", "text/plain", NOW)
        source.add_page("10", ChangePage(
            entries=[ChangeEntry("doc-1", file=source.files["doc-1"])],
            new_start_cursor="11",
        ))
        await cache.set_change_token("global", "10")
        await monitor.get_changes()
        assert await cache.get("doc-1") is None

    def test_to_dict(self, monitor, source):
        change = monitor._classify(ChangeEntry("doc-gone", removed=True))
        assert change.to_dict()["change_type"] == "deleted"


class TestPagination:
    """Cursor advancement across pages."""

    @pytest.mark.asyncio
    async def test_walks_all_pages(self, monitor, source, cache):
        source.add_page("10", ChangePage(
            entries=[ChangeEntry("doc-1", file=source.files["doc-1"])], next_cursor="11",
        ))
        source.add_page("11", ChangePage(
            entries=[ChangeEntry("doc-2", file=source.files["doc-2"])], new_start_cursor="12",
        ))
        await cache.set_change_token("global", "10")

        result = await monitor.get_changes()
        assert result.pages_fetched == 2
        assert [c.file_id for c in result.changes] == ["doc-1", "doc-2"]
        assert result.new_cursor == "12"
        assert await cache.get_change_token("global") == "12"

    @pytest.mark.asyncio
    async def test_cursor_kept_when_walk_fails(self, monitor, source, cache):
        source.add_page("10", ChangePage(
            entries=[ChangeEntry("doc-1", file=source.files["doc-1"])], next_cursor="11",
        ))
        source.add_page("11", ChangePage(entries=[], new_start_cursor="12"))
        await cache.set_change_token("global", "10")

        original = source.list_changes

        async def failing_second_page(cursor, page_size=100):
            if cursor == "11":
                raise ConnectionError("503 from upstream")
            return await original(cursor, page_size)

        source.list_changes = failing_second_page
        with pytest.raises(ConnectionError):
            await monitor.get_changes()
        assert await cache.get_change_token("global") == "10"

        source.list_changes = original
        result = await monitor.get_changes()
        assert [c.file_id for c in result.changes] == ["doc-1"]
        assert await cache.get_change_token("global") == "12"

    @pytest.mark.asyncio
    async def test_page_limit_is_fatal(self, source, cache, notifier, audit):
        del source.folders["mkt"]
        validator = FolderPermissionValidator(source, ["Engineering/**"], notifier=notifier, audit=audit)
        monitor = ChangeSyncMonitor(source, cache, validator, SyncConfig(max_pages=2))
        for cursor in range(10, 14):
            source.add_page(str(cursor), ChangePage(entries=[], next_cursor=str(cursor + 1)))
        await cache.set_change_token("global", "10")

        with pytest.raises(FatalError):
            await monitor.get_changes()
        assert await cache.get_change_token("global") == "10"


class TestGuards:
    """Permissions and token management."""

    @pytest.mark.asyncio
    async def test_permission_violation_reads_nothing(self, source, cache, notifier, audit):
        validator = FolderPermissionValidator(source, ["Engineering/**"], notifier=notifier, audit=audit)
        monitor = ChangeSyncMonitor(source, cache, validator)
        await cache.set_change_token("global", "10")

        with pytest.raises(PermissionViolationError):
            await monitor.get_changes()
        assert source.calls["list_changes"] == 0
        assert await cache.get_change_token("global") == "10"

    @pytest.mark.asyncio
    async def test_reset_and_info(self, monitor, cache):
        await cache.set_change_token("global", "55")
        assert await monitor.get_token_info() == {"scope": "global", "has_token": True, "token": "55"}
        assert await monitor.reset_change_token() == "100"
        assert (await monitor.get_token_info())["token"] == "100"
