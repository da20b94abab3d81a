"""Post-generation validation of model output.

Checks, in order:

* secrets (any SecretScanner hit is CRITICAL)
* suspicious artifacts such as model self-reference, leaked system-prompt
  fragments, command-execution evidence and OS paths (HIGH)
* technical level vs. the format profile (MEDIUM)
* word count vs. the format profile band (LOW, MEDIUM beyond the multiplier)

Overall risk is the highest severity present.  HIGH or CRITICAL requires
manual review.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from docgate.config.schema import FormatProfile, ValidatorConfig

from .secrets import SecretScanner
from .types import Severity, max_severity


class IssueType:
    SECRET_DETECTED = "SECRET_DETECTED"
    SUSPICIOUS_PATTERN = "SUSPICIOUS_PATTERN"
    TECHNICAL_LEVEL_MISMATCH = "TECHNICAL_LEVEL_MISMATCH"
    OUTPUT_TOO_SHORT = "OUTPUT_TOO_SHORT"
    OUTPUT_TOO_LONG = "OUTPUT_TOO_LONG"


@dataclass(frozen=True)
class _Suspicious:
    regex: re.Pattern[str]
    description: str


def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


SUSPICIOUS_PATTERNS: List[_Suspicious] = [
    # model self-reference
    _Suspicious(_compile(r"I\s+am\s+an\s+AI"), "Model self-reference"),
    _Suspicious(_compile(r"as\s+an\s+AI\s+language\s+model"), "Model self-reference"),
    _Suspicious(_compile(r"I\s+cannot\s+provide"), "Model refusal phrasing"),
    _Suspicious(_compile(r"I\s+apologize,\s+but"), "Model refusal phrasing"),
    _Suspicious(_compile(r"SECURITY\s+ALERT:"), "Generator reported suspicious input"),
    # leaked system prompt
    _Suspicious(_compile(r"SYSTEM:"), "Leaked system-prompt fragment"),
    _Suspicious(_compile(r"\[SYSTEM\]"), "Leaked system-prompt fragment"),
    _Suspicious(_compile(r"You\s+are\s+a\s+helpful\s+assistant"), "Leaked system-prompt fragment"),
    _Suspicious(_compile(r"CRITICAL\s+SECURITY\s+RULES"), "Leaked system-prompt fragment"),
    # command execution
    _Suspicious(_compile(r"executed\s+command"), "Command execution evidence"),
    _Suspicious(_compile(r"script\s+output:"), "Command execution evidence"),
    # OS paths
    _Suspicious(_compile(r"/etc/passwd"), "OS file path leakage"),
    _Suspicious(_compile(r"/root/"), "OS file path leakage"),
    _Suspicious(_compile(r"C:\\Windows\\System32"), "OS file path leakage"),
]

TECHNICAL_TERMS = (
    "api", "database", "algorithm", "framework", "architecture",
    "implementation", "infrastructure", "deployment", "kubernetes",
    "microservices", "authentication", "authorization", "encryption",
    "protocol", "endpoint", "latency", "throughput", "scalability",
)
_TECHNICAL_RE = re.compile(r"\b(?:" + "|".join(TECHNICAL_TERMS) + r")\b", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationIssue:
    type: str
    severity: Severity
    description: str
    location: Optional[int] = None
    context: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "description": self.description,
            "location": self.location,
            "context": self.context,
        }


@dataclass(frozen=True)
class ValidationResult:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def risk_level(self) -> Severity:
        return max_severity(i.severity for i in self.issues)

    @property
    def requires_manual_review(self) -> bool:
        return self.risk_level in (Severity.HIGH, Severity.CRITICAL)

    @property
    def valid(self) -> bool:
        return not any(i.severity in (Severity.HIGH, Severity.CRITICAL) for i in self.issues)

    @property
    def critical_issues(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.CRITICAL]

    def issues_of(self, issue_type: str) -> List[ValidationIssue]:
        return [i for i in self.issues if i.type == issue_type]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "risk_level": self.risk_level.value,
            "requires_manual_review": self.requires_manual_review,
            "issues": [i.to_dict() for i in self.issues],
        }


# ---------------------------------------------------------------------------
# OutputValidator
# ---------------------------------------------------------------------------

class OutputValidator:
    """Validates generated text before it is distributed."""

    def __init__(
        self,
        config: ValidatorConfig | None = None,
        scanner: SecretScanner | None = None,
    ) -> None:
        self.config = config or ValidatorConfig()
        self.scanner = scanner or SecretScanner()

    def validate(self, output: str, format_name: str, audience: str = "") -> ValidationResult:
        """Validate *output* against the profile for *format_name*.

        Unknown formats are validated against the default profile.  *audience*
        is carried into issue descriptions only.
        """
        profile = self.config.profile_for(format_name)
        issues: List[ValidationIssue] = []
        issues.extend(self._check_secrets(output))
        issues.extend(self._check_suspicious(output))
        issues.extend(self._check_technical_level(output, format_name, audience, profile))
        issues.extend(self._check_length(output, profile))
        return ValidationResult(issues=issues)

    def technical_level(self, text: str) -> int:
        """Technical-term density mapped onto 0-10."""
        words = text.split()
        if not words:
            return 0
        density = len(_TECHNICAL_RE.findall(text)) / len(words)
        return min(10, round(density * 100))

    # -- checks ---------------------------------------------------------------

    def _check_secrets(self, output: str) -> List[ValidationIssue]:
        result = self.scanner.scan(output)
        return [
            ValidationIssue(
                type=IssueType.SECRET_DETECTED,
                severity=Severity.CRITICAL,
                description=f"Potential {f.type} detected in output",
                location=f.location,
                context=f.context,
            )
            for f in result.secrets
        ]

    def _check_suspicious(self, output: str) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        for pattern in SUSPICIOUS_PATTERNS:
            m = pattern.regex.search(output)
            if m:
                issues.append(ValidationIssue(
                    type=IssueType.SUSPICIOUS_PATTERN,
                    severity=Severity.HIGH,
                    description=f"{pattern.description}: {pattern.regex.pattern}",
                    location=m.start(),
                    context=self._context(output, m.start(), m.end()),
                ))
        return issues

    def _check_technical_level(
        self,
        output: str,
        format_name: str,
        audience: str,
        profile: FormatProfile,
    ) -> List[ValidationIssue]:
        actual = self.technical_level(output)
        expected = profile.expected_technical_level
        if abs(actual - expected) <= self.config.technical_level_margin:
            return []
        target = f"{format_name} format" + (f" for {audience}" if audience else "")
        return [ValidationIssue(
            type=IssueType.TECHNICAL_LEVEL_MISMATCH,
            severity=Severity.MEDIUM,
            description=(
                f"Content technical level ({actual}/10) doesn't match "
                f"{target} (expected {expected}/10)"
            ),
        )]

    def _check_length(self, output: str, profile: FormatProfile) -> List[ValidationIssue]:
        words = len(output.split())
        band = f"expected {profile.min_words}-{profile.max_words}"
        if words < profile.min_words:
            return [ValidationIssue(
                type=IssueType.OUTPUT_TOO_SHORT,
                severity=Severity.LOW,
                description=f"Output too short: {words} words ({band})",
            )]
        if words > profile.max_words * self.config.length_multiplier:
            return [ValidationIssue(
                type=IssueType.OUTPUT_TOO_LONG,
                severity=Severity.MEDIUM,
                description=(
                    f"Output unusually long: {words} words ({band}). "
                    "May indicate prompt injection."
                ),
            )]
        if words > profile.max_words:
            return [ValidationIssue(
                type=IssueType.OUTPUT_TOO_LONG,
                severity=Severity.LOW,
                description=f"Output too long: {words} words ({band})",
            )]
        return []

    def _context(self, text: str, start: int, end: int) -> str:
        n = self.config.context_length
        return "..." + self.scanner.redact(text[max(0, start - n):end + n]) + "..."
