"""Pydantic models for the gateway configuration document.

A single JSON document holds every tunable of the gateway: resilience
policies, cache lifetimes, the folder whitelist, scan limits, the heuristic
thresholds of the sanitizer and validator, and the per-format output
profiles.  Every field has a default, so an empty document is valid.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Resilience
# ---------------------------------------------------------------------------

class RetryPolicy(BaseModel):
    """Exponential backoff for a single upstream operation."""

    max_attempts: int = Field(default=5, ge=1)
    initial_delay: float = Field(default=1.0, ge=0.0, description="Seconds before the 2nd attempt")
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    attempt_timeout: float = Field(default=60.0, gt=0.0, description="Per-attempt timeout in seconds")
    jitter: bool = False


class BreakerPolicy(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    reset_timeout: float = Field(default=60.0, gt=0.0)


class RateLimit(BaseModel):
    """Token bucket parameters for one resource class."""

    rate: float = Field(..., gt=0.0, description="Tokens added per second")
    burst: int = Field(..., ge=1, description="Bucket capacity")


def _default_rate_limits() -> dict[str, RateLimit]:
    return {
        "source.metadata": RateLimit(rate=10.0, burst=20),
        "source.export": RateLimit(rate=2.0, burst=5),
        "generator": RateLimit(rate=1.0, burst=3),
    }


class ResilienceConfig(BaseModel):
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    breakers: dict[str, BreakerPolicy] = Field(default_factory=dict)
    default_breaker: BreakerPolicy = Field(default_factory=BreakerPolicy)
    rate_limits: dict[str, RateLimit] = Field(default_factory=_default_rate_limits)

    def breaker_policy(self, name: str) -> BreakerPolicy:
        return self.breakers.get(name, self.default_breaker)


# ---------------------------------------------------------------------------
# Sync / cache
# ---------------------------------------------------------------------------

GOOGLE_DOC_MIME = "application/vnd.google-apps.document"
FOLDER_MIME = "application/vnd.google-apps.folder"


class CacheConfig(BaseModel):
    enabled: bool = True
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "gdoc:"
    content_ttl_seconds: int = Field(default=900, ge=1)
    metadata_ttl_seconds: int = Field(default=300, ge=1)
    connect_timeout: float = Field(default=2.0, gt=0.0)


class SyncConfig(BaseModel):
    """Folder whitelist and change-walk settings."""

    monitored_folders: list[str] = Field(
        default_factory=list,
        description="Whitelist patterns: exact path, 'a/*' (direct children), 'a/**' (subtree)",
    )
    monitored_mime_types: list[str] = Field(
        default_factory=lambda: [GOOGLE_DOC_MIME, "text/markdown", "text/plain"]
    )
    scope: str = Field(default="global", min_length=1)
    page_size: int = Field(default=100, ge=1, le=1000)
    max_pages: int = Field(default=500, ge=1, description="Abort the walk beyond this many pages")

    @field_validator("monitored_folders", mode="before")
    @classmethod
    def _strip_patterns(cls, v: list[str]) -> list[str]:
        return [p.strip() for p in v if p and p.strip()]


class ScanLimits(BaseModel):
    """Bounds for full scans and fetched content."""

    window_days: int = Field(default=7, ge=1)
    max_documents: int = Field(default=100, ge=1)
    max_document_bytes: int = Field(default=1_000_000, ge=1)
    max_digest_bytes: int = Field(default=5_000_000, ge=1)


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------

class SanitizerConfig(BaseModel):
    instruction_density_threshold: float = Field(default=0.10, ge=0.0, le=1.0)
    max_removal_ratio: float = Field(default=0.5, gt=0.0, le=1.0)


class ScannerConfig(BaseModel):
    context_length: int = Field(default=50, ge=0)
    include_pii: bool = False


class FormatProfile(BaseModel):
    """Output expectations for one stakeholder format."""

    audience: str
    length_hint: str
    technical_hint: str
    focus: list[str] = Field(default_factory=list)
    expected_technical_level: int = Field(..., ge=0, le=10)
    min_words: int = Field(..., ge=0)
    max_words: int = Field(..., ge=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "FormatProfile":
        if self.min_words > self.max_words:
            raise ValueError(
                f"min_words ({self.min_words}) must not exceed max_words ({self.max_words})"
            )
        return self


DEFAULT_FORMAT = "unified"


def default_format_profiles() -> dict[str, FormatProfile]:
    return {
        "executive": FormatProfile(
            audience="executives and board members",
            length_hint="1 page (500-700 words)",
            technical_hint="low (business-focused)",
            focus=["business value", "risks", "timeline"],
            expected_technical_level=2,
            min_words=400,
            max_words=800,
        ),
        "marketing": FormatProfile(
            audience="marketing and communications",
            length_hint="1 page (500-700 words)",
            technical_hint="low (customer-friendly)",
            focus=["features", "user value", "positioning"],
            expected_technical_level=3,
            min_words=400,
            max_words=800,
        ),
        "product": FormatProfile(
            audience="product management",
            length_hint="2 pages (800-1500 words)",
            technical_hint="medium (user-focused)",
            focus=["user impact", "technical constraints", "next steps"],
            expected_technical_level=5,
            min_words=800,
            max_words=1500,
        ),
        "engineering": FormatProfile(
            audience="engineering teams",
            length_hint="3 pages (1200-2500 words)",
            technical_hint="high (technical deep-dive)",
            focus=["technical details", "architecture", "data models"],
            expected_technical_level=8,
            min_words=1200,
            max_words=2500,
        ),
        "unified": FormatProfile(
            audience="all stakeholders",
            length_hint="2 pages (800-1500 words)",
            technical_hint="medium (balanced)",
            focus=["key features", "business impact", "technical overview"],
            expected_technical_level=5,
            min_words=800,
            max_words=1500,
        ),
    }


class ValidatorConfig(BaseModel):
    technical_level_margin: int = Field(default=2, ge=0, le=10)
    length_multiplier: float = Field(default=2.0, ge=1.0)
    context_length: int = Field(default=50, ge=0)
    profiles: dict[str, FormatProfile] = Field(default_factory=default_format_profiles)

    @field_validator("profiles")
    @classmethod
    def _require_default(cls, v: dict[str, FormatProfile]) -> dict[str, FormatProfile]:
        if DEFAULT_FORMAT not in v:
            raise ValueError(f"profiles must define the '{DEFAULT_FORMAT}' format")
        return v

    def profile_for(self, format_name: str) -> FormatProfile:
        """Return the profile for *format_name*, falling back to the default format."""
        return self.profiles.get(format_name, self.profiles[DEFAULT_FORMAT])


class ReviewConfig(BaseModel):
    queue_path: str = "data/review-queue.json"
    max_retained: int = Field(default=100, ge=1)


class AuditConfig(BaseModel):
    log_path: str = "logs/security-events.log"


# ---------------------------------------------------------------------------
# Root document
# ---------------------------------------------------------------------------

class GatewayConfig(BaseModel):
    """Root of the gateway configuration document."""

    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    scan_limits: ScanLimits = Field(default_factory=ScanLimits)
    sanitizer: SanitizerConfig = Field(default_factory=SanitizerConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
