"""
Manual review queue for flagged generator output.

Items are created PENDING by the gateway when validation requires human
review, and move to APPROVED or REJECTED only through an explicit reviewer
action.  Terminal items are never mutated again.

The queue is persisted as a JSON list, rewritten atomically (temp file +
rename) on every mutation, and bounded to the most recent ``max_retained``
items by flag time.

Example:
    queue = ReviewQueue("data/review-queue.json", notifier=LoggingNotifier())

    try:
        await queue.flag_for_review({"content": text}, "Secrets in output", issues)
    except ReviewRequiredError as e:
        print(f"Waiting on review {e.review_id}")

    await queue.approve("review-1718000000000-ab12cd34", reviewed_by="alice")
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, NoReturn, Optional

from docgate.errors import ReviewRequiredError

from .audit import AuditEvent, SecurityAuditLog
from .notifications import LoggingNotifier, Notifier, SecurityAlert, send_alert
from .types import Severity

logger = logging.getLogger(__name__)


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ReviewQueueError(Exception):
    """Raised when a review queue operation fails."""


class ReviewNotFoundError(ReviewQueueError):
    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"Review item {review_id} not found")


class InvalidReviewTransitionError(ReviewQueueError):
    """Raised when approving or rejecting an item that is no longer PENDING."""

    def __init__(self, review_id: str, status: "ReviewStatus"):
        self.review_id = review_id
        self.status = status
        super().__init__(f"Review item {review_id} already processed ({status.value})")


@dataclass
class ReviewItem:
    """
    A flagged payload awaiting (or past) a reviewer decision.

    Attributes:
        id: Unique review id ("review-<ms>-<hex>").
        payload: The blocked output and its request context.
        reason: Why the item was flagged.
        flagged_at: When the item was created.
        flagged_by: Component that flagged it.
        reviewed_by: Reviewer id, once decided.
        reviewed_at: Decision time, once decided.
        approved: True only for APPROVED items.
        status: PENDING, APPROVED or REJECTED.
        security_issues: Short descriptions of the validation issues.
        notes: Reviewer notes.
    """

    id: str
    payload: dict[str, Any]
    reason: str
    flagged_at: datetime
    flagged_by: str = "system"
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    approved: bool = False
    status: ReviewStatus = ReviewStatus.PENDING
    security_issues: list[str] = field(default_factory=list)
    notes: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not ReviewStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payload": self.payload,
            "reason": self.reason,
            "flagged_at": self.flagged_at.isoformat(),
            "flagged_by": self.flagged_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "approved": self.approved,
            "status": self.status.value,
            "security_issues": list(self.security_issues),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewItem":
        reviewed_at = data.get("reviewed_at")
        return cls(
            id=data["id"],
            payload=data.get("payload", {}),
            reason=data["reason"],
            flagged_at=datetime.fromisoformat(data["flagged_at"]),
            flagged_by=data.get("flagged_by", "system"),
            reviewed_by=data.get("reviewed_by"),
            reviewed_at=datetime.fromisoformat(reviewed_at) if reviewed_at else None,
            approved=bool(data.get("approved", False)),
            status=ReviewStatus(data.get("status", ReviewStatus.PENDING.value)),
            security_issues=list(data.get("security_issues", [])),
            notes=data.get("notes"),
        )


def _new_review_id() -> str:
    return f"review-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class ReviewQueue:
    """Persisted human-in-the-loop gate for flagged output.

    All mutations are serialized by an instance lock.  When *path* is None
    the queue lives in memory only.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        notifier: Notifier | None = None,
        audit: SecurityAuditLog | None = None,
        max_retained: int = 100,
    ) -> None:
        self.path = Path(path) if path else None
        self.notifier = notifier or LoggingNotifier()
        self.audit = audit or SecurityAuditLog()
        self.max_retained = max_retained
        self._items: dict[str, ReviewItem] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    # -- flagging ---------------------------------------------------------------

    async def flag_for_review(
        self,
        payload: dict[str, Any],
        reason: str,
        security_issues: list[str] | None = None,
        flagged_by: str = "system",
    ) -> NoReturn:
        """Create a PENDING item, persist, notify, audit, then raise.

        Raises:
            ReviewRequiredError: Always, carrying the new review id.
        """
        issues = list(security_issues or [])
        item = ReviewItem(
            id=_new_review_id(),
            payload=payload,
            reason=reason,
            flagged_at=datetime.now(timezone.utc),
            flagged_by=flagged_by,
            security_issues=issues,
        )

        async with self._lock:
            try:
                await self._ensure_loaded()
                readable = True
            except ReviewQueueError:
                logger.exception("Flagging %s against an unreadable queue", item.id)
                readable = False
            self._items[item.id] = item
            self._evict(self.max_retained)
            if readable:
                await self._save_quietly()

        logger.warning("Output flagged for review %s: %s", item.id, reason)
        await send_alert(self.notifier, SecurityAlert(
            title="Content flagged for review",
            message=reason,
            severity=Severity.HIGH,
            category="review",
            details={"review_id": item.id, "issues": issues},
        ))
        await self.audit.record(
            AuditEvent.FLAGGED_FOR_REVIEW,
            review_id=item.id,
            reason=reason,
            security_issues=issues,
            status=item.status.value,
        )
        raise ReviewRequiredError(item.id, reason, [{"description": i} for i in issues])

    # -- reviewer actions -------------------------------------------------------

    async def approve(self, review_id: str, reviewed_by: str, notes: str | None = None) -> ReviewItem:
        return await self._decide(review_id, reviewed_by, notes, approved=True)

    async def reject(self, review_id: str, reviewed_by: str, notes: str | None = None) -> ReviewItem:
        return await self._decide(review_id, reviewed_by, notes, approved=False)

    async def _decide(
        self,
        review_id: str,
        reviewed_by: str,
        notes: str | None,
        *,
        approved: bool,
    ) -> ReviewItem:
        if not reviewed_by:
            raise ValueError("reviewed_by cannot be empty")

        async with self._lock:
            await self._ensure_loaded()
            item = self._items.get(review_id)
            if item is None:
                raise ReviewNotFoundError(review_id)
            if item.is_terminal:
                raise InvalidReviewTransitionError(review_id, item.status)

            item = replace(
                item,
                status=ReviewStatus.APPROVED if approved else ReviewStatus.REJECTED,
                approved=approved,
                reviewed_by=reviewed_by,
                reviewed_at=datetime.now(timezone.utc),
                notes=notes,
            )
            # Memory only changes once the decision is on disk.
            staged = {**self._items, review_id: item}
            await self._save(staged)
            self._items = staged

        logger.info("Review %s %s by %s", review_id, item.status.value.lower(), reviewed_by)
        await self.audit.record(
            AuditEvent.REVIEW_APPROVED if approved else AuditEvent.REVIEW_REJECTED,
            review_id=review_id,
            reason=item.reason,
            security_issues=item.security_issues,
            status=item.status.value,
            reviewed_by=reviewed_by,
        )
        return item

    # -- queries ----------------------------------------------------------------

    async def get_pending_reviews(self) -> list[ReviewItem]:
        items = await self.list_items()
        return [i for i in items if i.status is ReviewStatus.PENDING]

    async def get_review_item(self, review_id: str) -> Optional[ReviewItem]:
        async with self._lock:
            await self._ensure_loaded()
            return self._items.get(review_id)

    async def list_items(self) -> list[ReviewItem]:
        """All retained items, oldest first."""
        async with self._lock:
            await self._ensure_loaded()
            return sorted(self._items.values(), key=lambda i: i.flagged_at)

    async def get_statistics(self) -> dict[str, int]:
        items = await self.list_items()
        return {
            "total": len(items),
            "pending": sum(1 for i in items if i.status is ReviewStatus.PENDING),
            "approved": sum(1 for i in items if i.status is ReviewStatus.APPROVED),
            "rejected": sum(1 for i in items if i.status is ReviewStatus.REJECTED),
        }

    async def cleanup_old_reviews(self, keep: int | None = None) -> int:
        """Retain only the most recent *keep* items by flag time.

        Returns:
            Number of items removed.
        """
        async with self._lock:
            await self._ensure_loaded()
            removed = self._evict(keep if keep is not None else self.max_retained)
            if removed:
                await self._save()
        if removed:
            logger.info("Cleaned up %d old review items", removed)
        return removed

    # -- persistence (caller holds the lock) ----------------------------------

    def _evict(self, keep: int) -> int:
        if len(self._items) <= keep:
            return 0
        newest_first = sorted(self._items.values(), key=lambda i: i.flagged_at, reverse=True)
        for stale in newest_first[keep:]:
            del self._items[stale.id]
        return len(newest_first) - keep

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self.path is None or not self.path.exists():
            self._loaded = True
            return
        try:
            raw = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            for data in json.loads(raw):
                item = ReviewItem.from_dict(data)
                self._items[item.id] = item
        except (OSError, ValueError, KeyError) as exc:
            raise ReviewQueueError(f"Failed to load review queue {self.path}: {exc}") from exc
        self._loaded = True
        logger.debug("Loaded %d review items from %s", len(self._items), self.path)

    async def _save(self, items: dict[str, ReviewItem] | None = None) -> None:
        if self.path is None:
            return
        items = self._items if items is None else items
        data = [i.to_dict() for i in sorted(items.values(), key=lambda i: i.flagged_at)]
        try:
            await asyncio.to_thread(self._write_atomic, json.dumps(data, indent=2))
        except OSError as exc:
            raise ReviewQueueError(f"Failed to save review queue {self.path}: {exc}") from exc

    async def _save_quietly(self) -> None:
        # Flagging must still block the pipeline when the disk write fails.
        try:
            await self._save()
        except ReviewQueueError:
            logger.exception("Review item kept in memory only")

    def _write_atomic(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(text + "\n", encoding="utf-8")
        tmp.replace(self.path)
