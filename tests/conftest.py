"""Shared fixtures: fake clocks, in-memory sources and quiet collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from docgate.config import GOOGLE_DOC_MIME
from docgate.security import RecordingNotifier, SecurityAuditLog
from docgate.sync import InMemoryDocumentSource, RemoteFile

NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def make_file(
    file_id: str,
    parent: str,
    *,
    name: str | None = None,
    mime_type: str = GOOGLE_DOC_MIME,
    modified: datetime | None = None,
    created: datetime | None = None,
    trashed: bool = False,
) -> RemoteFile:
    modified = modified or NOW - timedelta(hours=1)
    return RemoteFile(
        id=file_id,
        name=name or f"{file_id}.doc",
        mime_type=mime_type,
        modified_time=modified,
        created_time=created or modified - timedelta(days=3),
        parents=(parent,),
        trashed=trashed,
        web_view_link=f"https://docs.example.com/{file_id}",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit() -> SecurityAuditLog:
    return SecurityAuditLog()


@pytest.fixture
def source() -> InMemoryDocumentSource:
    """Engineering/{Projects/{Alpha}, Specs} plus Marketing, two docs in Alpha."""
    src = InMemoryDocumentSource(start_cursor="100")
    src.add_folder("eng", "Engineering")
    src.add_folder("proj", "Projects", parent="eng")
    src.add_folder("alpha", "Alpha", parent="proj")
    src.add_folder("specs", "Specs", parent="eng")
    src.add_folder("mkt", "Marketing")
    src.add_file(make_file("doc-1", "alpha"), "Alpha design notes.")
    src.add_file(make_file("doc-2", "alpha", modified=NOW - timedelta(hours=2)), "Alpha rollout plan.")
    return src
