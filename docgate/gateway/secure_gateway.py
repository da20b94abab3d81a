"""Secure transformation gateway.

Sits between an untrusted document source and an untrusted text generator.
The pipeline order is fixed:

    sanitize -> scan input -> build hardened prompt -> generate
    (rate limit + circuit breaker + retry) -> validate output -> block,
    queue for review, or return

CRITICAL findings on either side are an emergency stop and are never
routed through the review queue.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from docgate.config.schema import ResilienceConfig
from docgate.errors import GatewayError, SecurityBlockError
from docgate.resilience import CircuitBreakerRegistry, RateLimiter, RetryExecutor
from docgate.security.audit import AuditEvent, SecurityAuditLog
from docgate.security.output_validator import OutputValidator, ValidationIssue, ValidationResult
from docgate.security.review_queue import ReviewQueue
from docgate.security.sanitizer import ContentSanitizer
from docgate.security.secrets import SecretScanner
from docgate.security.types import Severity

from .generator import TextGenerator
from .prompt import PromptDocument, build_prompt

logger = logging.getLogger(__name__)

GENERATOR_RESOURCE = "generator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GenerationRequest:
    documents: list[PromptDocument]
    format: str
    audience: Optional[str] = None
    requested_by: str = "system"

    @classmethod
    def from_documents(cls, documents: Sequence[Any], format: str, **kwargs: Any) -> "GenerationRequest":
        """Build a request from anything with ``name`` and ``content`` attributes."""
        return cls([PromptDocument(d.name, d.content) for d in documents], format, **kwargs)


@dataclass
class GenerationMetadata:
    content_sanitized: bool
    removed_patterns: list[str]
    sanitization_reasons: list[str]
    input_redactions: list[dict]
    validation_passed: bool
    validation_issues: list[ValidationIssue]
    risk_level: Severity
    requires_manual_review: bool
    started_at: datetime
    generated_at: datetime

    def to_dict(self) -> dict:
        return {
            "content_sanitized": self.content_sanitized,
            "removed_patterns": list(self.removed_patterns),
            "sanitization_reasons": list(self.sanitization_reasons),
            "input_redactions": list(self.input_redactions),
            "validation_passed": self.validation_passed,
            "validation_issues": [i.to_dict() for i in self.validation_issues],
            "risk_level": self.risk_level.value,
            "requires_manual_review": self.requires_manual_review,
            "started_at": self.started_at.isoformat(),
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass
class GatewayResult:
    content: str
    format: str
    metadata: GenerationMetadata

    def to_dict(self) -> dict:
        return {"content": self.content, "format": self.format, "metadata": self.metadata.to_dict()}


@dataclass
class _PreparedInput:
    documents: list[PromptDocument] = field(default_factory=list)
    flagged: bool = False
    removed: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    redactions: list[dict] = field(default_factory=list)


class SecureGateway:
    """Runs one hardened transformation per request."""

    def __init__(
        self,
        *,
        sanitizer: ContentSanitizer,
        scanner: SecretScanner,
        validator: OutputValidator,
        review_queue: ReviewQueue,
        generator: TextGenerator,
        retry: RetryExecutor,
        breakers: CircuitBreakerRegistry,
        limiter: RateLimiter,
        audit: SecurityAuditLog | None = None,
        resilience: ResilienceConfig | None = None,
    ) -> None:
        self.sanitizer = sanitizer
        self.scanner = scanner
        self.validator = validator
        self.review_queue = review_queue
        self.generator = generator
        self.retry = retry
        self.breakers = breakers
        self.limiter = limiter
        self.audit = audit or SecurityAuditLog()
        self.resilience = resilience or ResilienceConfig()

    async def generate(self, request: GenerationRequest) -> GatewayResult:
        """Transform *request* into validated output.

        Raises:
            SecurityBlockError: Unsafe input or CRITICAL output issues.
            ReviewRequiredError: Output parked in the review queue.
            TransientError: Generator unavailable after retries, or circuit open.
        """
        started = _utcnow()
        profile = self.validator.config.profile_for(request.format)
        audience = request.audience or profile.audience
        logger.info(
            "Starting secure generation: format=%s audience=%s documents=%d",
            request.format, audience, len(request.documents),
        )

        prepared = await self._prepare_input(request)
        prompt = build_prompt(prepared.documents, request.format, profile, audience)
        output = await self._invoke_generator(prompt)

        validation = self.validator.validate(output, request.format, audience)
        if not validation.valid:
            logger.warning(
                "Output validation failed for %s: %d issue(s), risk %s",
                request.format, len(validation.issues), validation.risk_level.value,
            )
        await self._enforce(request, output, validation)

        metadata = GenerationMetadata(
            content_sanitized=prepared.flagged,
            removed_patterns=prepared.removed,
            sanitization_reasons=prepared.reasons,
            input_redactions=prepared.redactions,
            validation_passed=validation.valid,
            validation_issues=list(validation.issues),
            risk_level=validation.risk_level,
            requires_manual_review=validation.requires_manual_review,
            started_at=started,
            generated_at=_utcnow(),
        )
        logger.info(
            "Secure generation complete: format=%s sanitized=%s issues=%d",
            request.format, prepared.flagged, len(validation.issues),
        )
        return GatewayResult(content=output, format=request.format, metadata=metadata)

    async def generate_for_formats(
        self,
        documents: Sequence[Any],
        formats: Sequence[str],
        audience: Optional[str] = None,
        requested_by: str = "system",
    ) -> dict[str, GatewayResult | GatewayError]:
        """Run one transformation per format concurrently.

        Gateway errors are returned in place of the result for their format;
        anything else propagates.
        """
        requests = [
            GenerationRequest.from_documents(documents, fmt, audience=audience, requested_by=requested_by)
            for fmt in formats
        ]
        outcomes = await asyncio.gather(
            *(self.generate(r) for r in requests), return_exceptions=True,
        )
        results: dict[str, GatewayResult | GatewayError] = {}
        for fmt, outcome in zip(formats, outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, GatewayError):
                raise outcome
            results[fmt] = outcome
        return results

    # -- pipeline steps -----------------------------------------------------------

    async def _prepare_input(self, request: GenerationRequest) -> _PreparedInput:
        prepared = _PreparedInput()
        for doc in request.documents:
            result = self.sanitizer.sanitize(doc.content)
            if result.flagged:
                logger.warning(
                    "Document flagged during sanitization: %s (%s, %d removal(s))",
                    doc.name, result.reason, len(result.removed),
                )
                prepared.flagged = True
                prepared.removed.extend(result.removed)
                prepared.reasons.extend(r for r in result.reasons if r not in prepared.reasons)

            if not self.sanitizer.validate_sanitization(doc.content, result.sanitized):
                await self.audit.record(
                    AuditEvent.INPUT_BLOCKED,
                    document=doc.name,
                    reason="sanitization",
                    removal_ratio=round(result.removal_ratio, 4),
                )
                raise SecurityBlockError(
                    f"Sanitization of {doc.name} failed validation "
                    f"({result.removal_ratio:.0%} removed)",
                    details={"document": doc.name, "reasons": result.reasons},
                )

            content = await self._scan_input(doc.name, result.sanitized, prepared)
            prepared.documents.append(PromptDocument(doc.name, content))
        return prepared

    async def _scan_input(self, name: str, content: str, prepared: _PreparedInput) -> str:
        scan = self.scanner.scan(content)
        if not scan.has_secrets:
            return content

        findings = [f.to_dict() for f in scan.secrets]
        if scan.critical_found:
            logger.error(
                "CRITICAL secret(s) in input document %s: %s; generation blocked",
                name, ", ".join(scan.types),
            )
            await self.audit.record(
                AuditEvent.INPUT_BLOCKED, document=name, reason="secrets", secrets=findings,
            )
            raise SecurityBlockError(
                f"Input document {name} contains {scan.critical_found} CRITICAL secret(s)",
                issues=findings,
            )

        logger.warning("Redacted %d secret(s) from input document %s", scan.total_found, name)
        prepared.redactions.extend({"document": name, **f} for f in findings)
        return scan.redacted_content

    async def _invoke_generator(self, prompt: str) -> str:
        breaker = self.breakers.get_or_create(
            GENERATOR_RESOURCE, self.resilience.breaker_policy(GENERATOR_RESOURCE),
        )

        async def attempt() -> str:
            await self.limiter.acquire(GENERATOR_RESOURCE)
            return await self.generator.generate(prompt)

        async def retried() -> str:
            result = await self.retry.execute(attempt, "generate")
            return result.unwrap()

        try:
            return await breaker.execute(retried)
        except GatewayError as exc:
            logger.error("Generator invocation failed: %s", exc)
            raise

    async def _enforce(self, request: GenerationRequest, output: str, validation: ValidationResult) -> None:
        critical = validation.critical_issues
        if critical:
            logger.error(
                "CRITICAL security issues in output for %s: %d", request.format, len(critical),
            )
            await self.audit.record(
                AuditEvent.OUTPUT_BLOCKED,
                format=request.format,
                requested_by=request.requested_by,
                issues=[i.to_dict() for i in critical],
            )
            raise SecurityBlockError(
                f"Cannot distribute output: {len(critical)} CRITICAL issue(s) detected\n"
                + "\n".join(f"- {i.description}" for i in critical),
                issues=[i.to_dict() for i in critical],
            )

        if validation.requires_manual_review:
            await self.review_queue.flag_for_review(
                {
                    "content": output,
                    "format": request.format,
                    "audience": request.audience,
                    "documents": [d.name for d in request.documents],
                    "requested_by": request.requested_by,
                },
                f"Output validation failed: {validation.risk_level.value} risk",
                [f"{i.type}: {i.description}" for i in validation.issues],
                flagged_by=request.requested_by,
            )
