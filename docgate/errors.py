"""
Error taxonomy for the docgate gateway.

Every failure that crosses a component boundary is a ``GatewayError`` tagged
with an ``ErrorKind`` so that callers can branch on the kind instead of on
message text.

Kinds:
    TRANSIENT        - upstream hiccup; retried, may open the breaker
    SECURITY_BLOCK   - content or permissions unsafe; never retried
    REVIEW_REQUIRED  - output parked in the review queue
    PARTIAL_FAILURE  - one item of a batch failed; recorded, batch continues
    INVALID_STATE    - stored state (e.g. a sync cursor) rejected; self-healed
    FATAL            - misconfiguration or unrecoverable condition

Example:
    try:
        result = await gateway.generate(request)
    except GatewayError as e:
        if e.kind is ErrorKind.REVIEW_REQUIRED:
            return f"Queued for review: {e.review_id}"
        raise
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    SECURITY_BLOCK = "security_block"
    REVIEW_REQUIRED = "review_required"
    PARTIAL_FAILURE = "partial_failure"
    INVALID_STATE = "invalid_state"
    FATAL = "fatal"


# Kinds that a retry or a circuit breaker must not treat as upstream failure.
NON_RETRYABLE_KINDS = frozenset({
    ErrorKind.SECURITY_BLOCK,
    ErrorKind.REVIEW_REQUIRED,
    ErrorKind.PARTIAL_FAILURE,
    ErrorKind.INVALID_STATE,
    ErrorKind.FATAL,
})


class GatewayError(Exception):
    """Base class for all tagged gateway errors.

    Attributes:
        kind: The error category.
        message: Human-readable description.
        details: Extra structured context (never contains raw secrets).
    """

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        self.message = message
        self.details = dict(details or {})
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dictionary for logs and API responses."""
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Transient
# ---------------------------------------------------------------------------

class TransientError(GatewayError):
    """An upstream failure that may succeed on a later attempt."""

    kind = ErrorKind.TRANSIENT


class RetriesExhaustedError(TransientError):
    """Raised when every retry attempt of an operation failed."""

    def __init__(self, label: str, attempts: int, last_error: BaseException | None = None):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{label} failed after {attempts} attempt(s): {last_error!r}",
            details={"label": label, "attempts": attempts},
        )


class CircuitOpenError(TransientError):
    """Raised without calling upstream while a circuit breaker is open."""

    def __init__(self, name: str, retry_after: float = 0.0):
        self.name = name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit '{name}' is open; retry in {retry_after:.1f}s",
            details={"circuit": name, "retry_after": retry_after},
        )


class RateLimitExceededError(TransientError):
    """Raised when a rate-limit token is not available within the allowed wait."""

    def __init__(self, resource: str, wait_seconds: float):
        self.resource = resource
        self.wait_seconds = wait_seconds
        super().__init__(
            f"Rate limit for '{resource}' exceeded (would wait {wait_seconds:.2f}s)",
            details={"resource": resource, "wait_seconds": wait_seconds},
        )


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------

class SecurityBlockError(GatewayError):
    """Content or access was judged unsafe. Never retried."""

    kind = ErrorKind.SECURITY_BLOCK

    def __init__(
        self,
        message: str,
        *,
        issues: list[dict[str, Any]] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.issues = list(issues or [])
        merged = dict(details or {})
        if self.issues:
            merged["issues"] = self.issues
        super().__init__(message, details=merged)


class PermissionViolationError(SecurityBlockError):
    """The service account can see folders outside the whitelist."""

    def __init__(self, message: str, *, unexpected_folders: list[str] | None = None):
        self.unexpected_folders = list(unexpected_folders or [])
        super().__init__(message, details={"unexpected_folders": self.unexpected_folders})


class ReviewRequiredError(GatewayError):
    """Generated output was placed in the manual review queue."""

    kind = ErrorKind.REVIEW_REQUIRED

    def __init__(self, review_id: str, reason: str, issues: list[dict[str, Any]] | None = None):
        self.review_id = review_id
        self.reason = reason
        self.issues = list(issues or [])
        super().__init__(
            f"Output flagged for manual review ({review_id}): {reason}",
            details={"review_id": review_id, "reason": reason},
        )


# ---------------------------------------------------------------------------
# State / fatal
# ---------------------------------------------------------------------------

class InvalidCursorError(GatewayError):
    """The upstream rejected a stored change cursor."""

    kind = ErrorKind.INVALID_STATE

    def __init__(self, cursor: str, message: str = "Change cursor rejected by upstream"):
        self.cursor = cursor
        super().__init__(message, details={"cursor": cursor})


class PartialFailureError(GatewayError):
    """One item of a batch failed. Recorded on the batch result, not raised out of it."""

    kind = ErrorKind.PARTIAL_FAILURE


class DocumentNotFoundError(PartialFailureError):
    """The source has no document with the requested id."""

    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"Document {file_id} not found", details={"file_id": file_id})


class FatalError(GatewayError):
    """Unrecoverable misconfiguration."""

    kind = ErrorKind.FATAL
