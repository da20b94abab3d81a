"""Secret scanning and redaction.

Rules are evaluated in order: vendor key formats first, then connection
strings, private-key headers, structured tokens, generic ``key=value``
patterns, and finally long opaque runs.  A span claimed by an earlier rule
is never reported again by a later, overlapping one.  Redaction replaces
every claimed span with ``[REDACTED: <TYPE>]`` and repeats until the text
is clean.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from docgate.config.schema import ScannerConfig

from .pii import PII_RULES, ScanRule
from .types import Severity

logger = logging.getLogger(__name__)

# Generic values stop at quotes, whitespace and brackets so that a
# "[REDACTED: ...]" marker never reads as a value.
_VALUE = r"""['"]?[^'"\s\[\]]"""


def _rule(name: str, pattern: str, severity: Severity, flags: int = 0) -> ScanRule:
    return ScanRule(name, re.compile(pattern, flags), severity)


SECRET_RULES: List[ScanRule] = [
    # Payment
    _rule("STRIPE_SECRET_KEY", r"sk_live_[a-zA-Z0-9]{24,}", Severity.CRITICAL),
    _rule("STRIPE_TEST_KEY", r"sk_test_[a-zA-Z0-9]{24,}", Severity.MEDIUM),
    _rule("STRIPE_PUBLISHABLE_KEY", r"pk_live_[a-zA-Z0-9]{24,}", Severity.LOW),
    # Google
    _rule("GOOGLE_API_KEY", r"AIza[a-zA-Z0-9_-]{35}", Severity.CRITICAL),
    _rule("GOOGLE_OAUTH_TOKEN", r"ya29\.[a-zA-Z0-9_-]+", Severity.HIGH),
    # GitHub
    _rule("GITHUB_PAT", r"github_pat_[a-zA-Z0-9_]{82}", Severity.CRITICAL),
    _rule("GITHUB_TOKEN", r"ghp_[a-zA-Z0-9]{36,}", Severity.CRITICAL),
    _rule("GITHUB_OAUTH", r"gho_[a-zA-Z0-9]{36,}", Severity.CRITICAL),
    # AWS
    _rule("AWS_ACCESS_KEY", r"AKIA[A-Z0-9]{16}", Severity.CRITICAL),
    _rule(
        "AWS_SECRET_KEY",
        r"aws_secret_access_key\s*[:=]\s*['\"]?[A-Za-z0-9/+=]{40}",
        Severity.CRITICAL,
        re.IGNORECASE,
    ),
    # Anthropic
    _rule("ANTHROPIC_API_KEY", r"sk-ant-api03-[a-zA-Z0-9_-]{95}", Severity.CRITICAL),
    # Connection strings
    _rule("POSTGRES_CONNECTION", r"postgres(?:ql)?(?:\+\w+)?://[^:\s/]+:[^@\s]+@", Severity.CRITICAL),
    _rule("MYSQL_CONNECTION", r"mysql(?:\+\w+)?://[^:\s/]+:[^@\s]+@", Severity.CRITICAL),
    _rule("MONGODB_CONNECTION", r"mongodb(?:\+srv)?://[^:\s/]+:[^@\s]+@", Severity.CRITICAL),
    # Private keys
    _rule("SSH_PRIVATE_KEY", r"-----BEGIN\s+OPENSSH\s+PRIVATE\s+KEY-----", Severity.CRITICAL),
    _rule("PRIVATE_KEY", r"-----BEGIN\s+(?:RSA\s+|EC\s+|DSA\s+)?PRIVATE\s+KEY-----", Severity.CRITICAL),
    # Structured tokens
    _rule("JWT_TOKEN", r"eyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+", Severity.HIGH),
    _rule(
        "DISCORD_BOT_TOKEN",
        r"(?<![A-Za-z0-9_-])[A-Za-z0-9_-]{24}\.[A-Za-z0-9_-]{6}\.[A-Za-z0-9_-]{27}(?![A-Za-z0-9_-])",
        Severity.HIGH,
    ),
    # Generic key=value
    _rule("GENERIC_PASSWORD", r"password\s*[:=]\s*" + _VALUE + r"{8,}", Severity.HIGH, re.IGNORECASE),
    _rule("GENERIC_API_KEY", r"api[_-]?key\s*[:=]\s*" + _VALUE + r"{16,}", Severity.HIGH, re.IGNORECASE),
    _rule("GENERIC_SECRET", r"secret\s*[:=]\s*" + _VALUE + r"{16,}", Severity.HIGH, re.IGNORECASE),
    _rule("GENERIC_TOKEN", r"token\s*[:=]\s*" + _VALUE + r"{16,}", Severity.HIGH, re.IGNORECASE),
    # Opaque runs
    _rule("LONG_ALPHANUMERIC", r"\b[a-zA-Z0-9]{32,}\b", Severity.MEDIUM),
]

_MAX_REDACTION_PASSES = 5


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SecretFinding:
    """A single secret match.

    ``matched_text`` holds the raw value and is excluded from repr; log
    ``preview`` instead.
    """

    type: str
    severity: Severity
    location: int
    end: int
    matched_text: str = field(repr=False)
    context: str = ""

    @property
    def preview(self) -> str:
        return mask(self.matched_text)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "location": self.location,
            "preview": self.preview,
            "context": self.context,
        }


@dataclass(frozen=True)
class ScanResult:
    has_secrets: bool
    secrets: List[SecretFinding]
    redacted_content: str

    @property
    def total_found(self) -> int:
        return len(self.secrets)

    @property
    def critical_found(self) -> int:
        return sum(1 for s in self.secrets if s.severity is Severity.CRITICAL)

    @property
    def types(self) -> List[str]:
        return sorted({s.type for s in self.secrets})

    def summary(self) -> dict:
        return {
            "total_found": self.total_found,
            "critical_found": self.critical_found,
            "types": self.types,
        }


def mask(value: str) -> str:
    """Non-reversible preview of a secret for logs: first 4 chars and length."""
    if len(value) <= 8:
        return f"***({len(value)})"
    return f"{value[:4]}***({len(value)})"


def redaction_marker(secret_type: str) -> str:
    return f"[REDACTED: {secret_type}]"


# ---------------------------------------------------------------------------
# SecretScanner
# ---------------------------------------------------------------------------

class SecretScanner:
    """Finds and redacts credentials (and optionally PII) in free text."""

    def __init__(
        self,
        config: ScannerConfig | None = None,
        extra_rules: Optional[Iterable[ScanRule]] = None,
    ) -> None:
        self.config = config or ScannerConfig()
        self._rules: List[ScanRule] = list(SECRET_RULES)
        if extra_rules:
            self._rules.extend(extra_rules)
        if self.config.include_pii:
            self._rules.extend(PII_RULES)

    @property
    def rules(self) -> List[ScanRule]:
        return list(self._rules)

    def scan(self, text: str) -> ScanResult:
        findings = self._find(text)
        redacted = self.redact(text) if findings else text
        if findings:
            logger.debug(
                "Secret scan: %d finding(s): %s",
                len(findings), ", ".join(f"{f.type}={f.preview}" for f in findings),
            )
        return ScanResult(
            has_secrets=bool(findings),
            secrets=findings,
            redacted_content=redacted,
        )

    def redact(self, text: str) -> str:
        for _ in range(_MAX_REDACTION_PASSES):
            findings = self._find(text)
            if not findings:
                return text
            text = self._apply(text, findings)
        # Last resort: anything still matching is replaced wholesale.
        for rule in self._rules:
            text = rule.regex.sub(redaction_marker(rule.name), text)
        return text

    def contains_secret(self, text: str, secret_type: Optional[str] = None) -> bool:
        findings = self._find(text)
        if secret_type is None:
            return bool(findings)
        return any(f.type == secret_type for f in findings)

    # -- internals ------------------------------------------------------------

    def _find(self, text: str) -> List[SecretFinding]:
        claimed: List[tuple[int, int]] = []
        findings: List[SecretFinding] = []
        for rule in self._rules:
            for m in rule.regex.finditer(text):
                start, end = m.span()
                if start == end or not rule.accepts(m.group(0)):
                    continue
                if any(start < c_end and c_start < end for c_start, c_end in claimed):
                    continue
                claimed.append((start, end))
                findings.append(SecretFinding(
                    type=rule.name,
                    severity=rule.severity,
                    location=start,
                    end=end,
                    matched_text=m.group(0),
                    context=self._context(text, start, end, rule.name),
                ))
        findings.sort(key=lambda f: f.location)
        return findings

    def _context(self, text: str, start: int, end: int, secret_type: str) -> str:
        n = self.config.context_length
        before = self._scrub(text[max(0, start - n):start])
        after = self._scrub(text[end:end + n])
        return f"{before}{redaction_marker(secret_type)}{after}"

    def _scrub(self, fragment: str) -> str:
        # Neighbouring secrets inside a context window.
        for rule in self._rules:
            fragment = rule.regex.sub(redaction_marker(rule.name), fragment)
        return fragment

    @staticmethod
    def _apply(text: str, findings: List[SecretFinding]) -> str:
        # Right to left so earlier offsets stay valid.
        for f in sorted(findings, key=lambda f: f.location, reverse=True):
            text = text[:f.location] + redaction_marker(f.type) + text[f.end:]
        return text
