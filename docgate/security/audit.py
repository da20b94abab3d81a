"""Append-only security audit log.

One JSON object per line.  Events carry a type, a UTC timestamp and
event-specific fields (review id, reason, issue summaries, reviewer).  Raw
secret values are never written; callers pass masked previews only.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class AuditEvent:
    FLAGGED_FOR_REVIEW = "FLAGGED_FOR_REVIEW"
    REVIEW_APPROVED = "REVIEW_APPROVED"
    REVIEW_REJECTED = "REVIEW_REJECTED"
    OUTPUT_BLOCKED = "OUTPUT_BLOCKED"
    INPUT_BLOCKED = "INPUT_BLOCKED"
    PERMISSION_VIOLATION = "PERMISSION_VIOLATION"
    SECRET_DETECTED_IN_DOCUMENT = "SECRET_DETECTED_IN_DOCUMENT"


class SecurityAuditLog:
    """Writes security events to a JSON-lines file.

    Without a *path* the most recent *max_events* events are kept in
    ``events`` instead; file-backed logs hold nothing in memory.
    """

    def __init__(self, path: str | Path | None = None, max_events: int = 1000) -> None:
        self.path = Path(path) if path else None
        self._lock = asyncio.Lock()
        self.events: deque[dict[str, Any]] = deque(maxlen=max_events)

    async def record(self, event_type: str, **fields: Any) -> dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            **fields,
        }
        async with self._lock:
            if self.path is None:
                self.events.append(entry)
            else:
                try:
                    await asyncio.to_thread(self._append, json.dumps(entry, default=str))
                except OSError:
                    logger.exception("Failed to write security audit event %s", event_type)
        logger.info("Security event %s %s", event_type, {k: v for k, v in fields.items() if k != "issues"})
        return entry

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def read(self) -> list[dict[str, Any]]:
        """Return every event persisted to disk, oldest first."""
        if self.path is None or not self.path.exists():
            return list(self.events)
        lines = self.path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]
