"""Folder whitelist enforcement for the document source credential.

The validator lists every folder the credential can see, resolves each to a
full path by walking parent links, and partitions the folders into
whitelisted and unexpected.  Any unexpected folder makes the result invalid:
callers must not scan while the credential can see outside the whitelist.

Whitelist patterns (case-insensitive, ``\\`` treated as ``/``):

    Engineering/Specs      exact path
    Engineering/*          direct children of Engineering only
    Engineering/**         Engineering itself and everything beneath it
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from docgate.errors import PermissionViolationError
from docgate.security.audit import AuditEvent, SecurityAuditLog
from docgate.security.notifications import LoggingNotifier, Notifier, SecurityAlert, send_alert
from docgate.security.types import Severity

from .models import FolderInfo, RemoteFile
from .source import DocumentSource

logger = logging.getLogger(__name__)

_MAX_DEPTH = 64


def _normalize(path: str) -> str:
    return path.strip().replace("\\", "/").lower()


def matches_pattern(path: str, pattern: str) -> bool:
    """Return True if folder *path* matches whitelist *pattern*."""
    actual = _normalize(path)
    expected = _normalize(pattern)

    if actual == expected:
        return True

    if expected.endswith("/**"):
        prefix = expected[:-3]
        return actual == prefix or actual.startswith(prefix + "/")

    if expected.endswith("/*"):
        prefix = expected[:-2]
        if actual.startswith(prefix + "/"):
            return "/" not in actual[len(prefix) + 1:]

    return False


@dataclass
class PermissionValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    whitelisted_folders: list[FolderInfo] = field(default_factory=list)
    unexpected_folders: list[FolderInfo] = field(default_factory=list)
    missing_patterns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "whitelisted_folders": [f.path for f in self.whitelisted_folders],
            "unexpected_folders": [f.path for f in self.unexpected_folders],
            "missing_patterns": list(self.missing_patterns),
        }


class FolderPermissionValidator:
    """Checks that the credential only sees whitelisted folders."""

    def __init__(
        self,
        source: DocumentSource,
        patterns: Sequence[str],
        *,
        notifier: Notifier | None = None,
        audit: SecurityAuditLog | None = None,
    ) -> None:
        self.source = source
        self.patterns = list(patterns)
        self.notifier = notifier or LoggingNotifier()
        self.audit = audit or SecurityAuditLog()
        self._folder_cache: dict[str, FolderInfo] = {}
        self._last_validation: Optional[datetime] = None
        self._last_result: Optional[PermissionValidationResult] = None

    # -- validation -----------------------------------------------------------

    async def validate_permissions(self) -> PermissionValidationResult:
        logger.info("Validating folder permissions against %d pattern(s)", len(self.patterns))
        try:
            folders = await self._resolve_accessible_folders()
        except Exception as exc:
            logger.error("Permission validation failed: %s", exc)
            self._folder_cache = {}
            return self._finish(PermissionValidationResult(
                valid=False, errors=[f"Permission validation failed: {exc}"],
            ))

        if not self.patterns:
            if folders:
                return await self._violation(
                    folders, [], "No monitored folders configured but the credential can see folders",
                )
            return self._finish(PermissionValidationResult(
                valid=True, warnings=["No monitored folders configured"],
            ))

        whitelisted = [f for f in folders if self.is_folder_whitelisted(f.path)]
        unexpected = [f for f in folders if not self.is_folder_whitelisted(f.path)]
        if unexpected:
            return await self._violation(unexpected, whitelisted)

        missing = [p for p in self.patterns if not any(matches_pattern(f.path, p) for f in folders)]
        warnings = [f"Missing access to: {', '.join(missing)}"] if missing else []
        if missing:
            logger.warning("Credential missing expected access: %s", ", ".join(missing))

        logger.info("Folder permission validation passed (%d folder(s))", len(whitelisted))
        return self._finish(PermissionValidationResult(
            valid=True,
            warnings=warnings,
            whitelisted_folders=whitelisted,
            missing_patterns=missing,
        ))

    async def ensure_valid(self) -> PermissionValidationResult:
        """Validate, raising ``PermissionViolationError`` on an invalid result."""
        result = await self.validate_permissions()
        if not result.valid:
            raise PermissionViolationError(
                "; ".join(result.errors) or "Folder permission validation failed",
                unexpected_folders=[f.path for f in result.unexpected_folders],
            )
        return result

    async def _violation(
        self,
        unexpected: list[FolderInfo],
        whitelisted: list[FolderInfo],
        headline: str = "Unexpected folder access detected",
    ) -> PermissionValidationResult:
        paths = [f.path for f in unexpected]
        logger.error("Credential has unexpected folder access: %s", ", ".join(paths))
        await send_alert(self.notifier, SecurityAlert(
            title="Folder permission violation",
            message=(
                "The document source credential can see folders outside the whitelist. "
                "Review and revoke the unexpected access."
            ),
            severity=Severity.CRITICAL,
            category="permissions",
            details={"unexpected_folders": paths},
        ))
        await self.audit.record(AuditEvent.PERMISSION_VIOLATION, unexpected_folders=paths)
        return self._finish(PermissionValidationResult(
            valid=False,
            errors=[
                f"{headline}: {', '.join(paths)}",
                "Credential has access to folders outside the whitelist",
            ],
            whitelisted_folders=whitelisted,
            unexpected_folders=unexpected,
        ))

    def _finish(self, result: PermissionValidationResult) -> PermissionValidationResult:
        self._last_validation = datetime.now(timezone.utc)
        self._last_result = result
        return result

    # -- path resolution ------------------------------------------------------

    async def _resolve_accessible_folders(self) -> list[FolderInfo]:
        """Resolve every visible folder and replace the folder cache with the result."""
        listing = await self.source.list_folders()
        by_id = {f.id: f for f in listing}
        fresh: dict[str, FolderInfo] = {}
        resolved = []
        for folder in listing:
            path = await self._resolve_path(folder, by_id, fresh)
            info = FolderInfo(
                id=folder.id,
                name=folder.name,
                path=path,
                parents=folder.parents,
                web_view_link=folder.web_view_link,
            )
            fresh[folder.id] = info
            resolved.append(info)
        self._folder_cache = fresh
        logger.info("Resolved %d accessible folder(s)", len(resolved))
        return resolved

    async def _resolve_path(
        self,
        folder: RemoteFile,
        by_id: dict[str, RemoteFile],
        resolved: dict[str, FolderInfo],
    ) -> str:
        names = [folder.name]
        seen = {folder.id}
        current = folder
        while current.parents and len(names) < _MAX_DEPTH:
            parent_id = current.parents[0]
            if parent_id in seen:
                logger.warning("Parent cycle at folder %s", parent_id)
                break
            seen.add(parent_id)

            cached = resolved.get(parent_id)
            if cached is not None:
                return "/".join([cached.path, *reversed(names)])

            parent = by_id.get(parent_id)
            if parent is None:
                try:
                    parent = await self.source.resolve_parent(parent_id)
                except Exception as exc:
                    logger.warning("Failed to resolve parent of %s: %s", current.name, exc)
                    parent = None
                if parent is None:
                    break
            names.append(parent.name)
            current = parent
        return "/".join(reversed(names))

    # -- lookups ---------------------------------------------------------------

    def is_folder_whitelisted(self, path: str) -> bool:
        return any(matches_pattern(path, p) for p in self.patterns)

    def is_folder_id_whitelisted(self, folder_id: str) -> bool:
        """Fast path for resolved ids; unknown ids are not whitelisted."""
        info = self._folder_cache.get(folder_id)
        return info is not None and self.is_folder_whitelisted(info.path)

    def folder_path(self, folder_id: str) -> Optional[str]:
        info = self._folder_cache.get(folder_id)
        return info.path if info else None

    def whitelisted_folders(self) -> list[FolderInfo]:
        return [f for f in self._folder_cache.values() if self.is_folder_whitelisted(f.path)]

    def statistics(self) -> dict:
        return {
            "patterns": len(self.patterns),
            "cached_folders": len(self._folder_cache),
            "whitelisted_folders": len(self.whitelisted_folders()),
            "last_validation": self._last_validation.isoformat() if self._last_validation else None,
            "last_valid": self._last_result.valid if self._last_result else None,
        }

    def clear_cache(self) -> None:
        self._folder_cache.clear()
        logger.debug("Folder cache cleared")
