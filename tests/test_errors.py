"""Tests for docgate.errors -- the tagged error taxonomy."""

import pytest

from docgate.errors import (
    NON_RETRYABLE_KINDS,
    CircuitOpenError,
    DocumentNotFoundError,
    ErrorKind,
    FatalError,
    GatewayError,
    InvalidCursorError,
    PartialFailureError,
    PermissionViolationError,
    RateLimitExceededError,
    RetriesExhaustedError,
    ReviewRequiredError,
    SecurityBlockError,
    TransientError,
)


class TestErrorKinds:
    """Each error class carries the right kind and retryability."""

    @pytest.mark.parametrize("error,kind", [
        (TransientError("x"), ErrorKind.TRANSIENT),
        (CircuitOpenError("source.export", 3.0), ErrorKind.TRANSIENT),
        (RateLimitExceededError("generator", 1.5), ErrorKind.TRANSIENT),
        (RetriesExhaustedError("op", 3, ValueError("boom")), ErrorKind.TRANSIENT),
        (SecurityBlockError("blocked"), ErrorKind.SECURITY_BLOCK),
        (PermissionViolationError("nope", unexpected_folders=["HR"]), ErrorKind.SECURITY_BLOCK),
        (ReviewRequiredError("review-1", "HIGH risk"), ErrorKind.REVIEW_REQUIRED),
        (InvalidCursorError("42"), ErrorKind.INVALID_STATE),
        (PartialFailureError("one doc"), ErrorKind.PARTIAL_FAILURE),
        (DocumentNotFoundError("doc-9"), ErrorKind.PARTIAL_FAILURE),
        (FatalError("misconfigured"), ErrorKind.FATAL),
    ])
    def test_kind(self, error, kind):
        assert isinstance(error, GatewayError)
        assert error.kind is kind

    def test_only_transient_is_retryable(self):
        assert TransientError("x").retryable
        for kind in NON_RETRYABLE_KINDS:
            assert kind is not ErrorKind.TRANSIENT
        assert not SecurityBlockError("x").retryable
        assert not ReviewRequiredError("r", "why").retryable
        assert not InvalidCursorError("c").retryable


class TestErrorPayloads:
    """Structured details for logs and callers."""

    def test_to_dict(self):
        err = CircuitOpenError("generator", 12.5)
        data = err.to_dict()
        assert data["error"] == "CircuitOpenError"
        assert data["kind"] == "transient"
        assert data["details"] == {"circuit": "generator", "retry_after": 12.5}

    def test_review_required_carries_id(self):
        err = ReviewRequiredError("review-123-abc", "Output validation failed: HIGH risk")
        assert err.review_id == "review-123-abc"
        assert "review-123-abc" in str(err)
        assert err.details["reason"].endswith("HIGH risk")

    def test_security_block_issues_in_details(self):
        issues = [{"type": "STRIPE_SECRET_KEY", "severity": "CRITICAL"}]
        err = SecurityBlockError("secret in input", issues=issues)
        assert err.issues == issues
        assert err.details["issues"] == issues

    def test_permission_violation_lists_folders(self):
        err = PermissionViolationError("unexpected access", unexpected_folders=["HR", "Finance"])
        assert err.unexpected_folders == ["HR", "Finance"]
        assert err.details == {"unexpected_folders": ["HR", "Finance"]}

    def test_retries_exhausted_keeps_last_error(self):
        cause = ConnectionError("reset")
        err = RetriesExhaustedError("fetch_content(doc-1)", 5, cause)
        assert err.last_error is cause
        assert err.attempts == 5
        assert "fetch_content(doc-1) failed after 5 attempt(s)" in err.message
