"""Content security pipeline -- sanitization, secret scanning, output validation, review."""

from .audit import AuditEvent, SecurityAuditLog
from .notifications import (
    ConsoleNotifier,
    LoggingNotifier,
    Notifier,
    RecordingNotifier,
    SecurityAlert,
    send_alert,
)
from .output_validator import IssueType, OutputValidator, ValidationIssue, ValidationResult
from .pii import PII_RULES, ScanRule, luhn_check
from .review_queue import (
    InvalidReviewTransitionError,
    ReviewItem,
    ReviewNotFoundError,
    ReviewQueue,
    ReviewQueueError,
    ReviewStatus,
)
from .sanitizer import ContentSanitizer, SanitizationResult
from .secrets import SECRET_RULES, ScanResult, SecretFinding, SecretScanner, mask
from .types import Severity, max_severity

__all__ = [
    "AuditEvent",
    "ConsoleNotifier",
    "ContentSanitizer",
    "InvalidReviewTransitionError",
    "IssueType",
    "LoggingNotifier",
    "Notifier",
    "OutputValidator",
    "PII_RULES",
    "RecordingNotifier",
    "ReviewItem",
    "ReviewNotFoundError",
    "ReviewQueue",
    "ReviewQueueError",
    "ReviewStatus",
    "SECRET_RULES",
    "SanitizationResult",
    "ScanResult",
    "ScanRule",
    "SecretFinding",
    "SecretScanner",
    "SecurityAlert",
    "SecurityAuditLog",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    "luhn_check",
    "mask",
    "max_severity",
    "send_alert",
]
