"""Prompt-injection sanitization of untrusted document content.

Pipeline, applied in order:

1. strip zero-width and bidi-control code points, turn invisible spaces into
   plain spaces, and note CSS-style hiding hints
2. NFC normalization
3. replace injection-indicator phrases with ``[REDACTED]`` (to a fixed point)
4. whitespace normalization (single spaces, at most two consecutive line breaks)
5. instructional-keyword density check
6. excessive-removal self check

Sanitizing already-sanitized text returns it unchanged.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional

from docgate.config.schema import SanitizerConfig

REDACTION_MARKER = "[REDACTED]"

REASON_HIDDEN_TEXT = "Hidden text detected and removed"
REASON_INJECTION = "Prompt injection keywords detected"
REASON_INSTRUCTIONS = "Excessive instructional content detected"
REASON_OVER_REMOVAL = "Excessive content removed during sanitization"


# ---------------------------------------------------------------------------
# Pattern library
# ---------------------------------------------------------------------------

def _compile(pattern: str, flags: int = re.IGNORECASE) -> re.Pattern[str]:
    return re.compile(pattern, flags)


DANGEROUS_PATTERNS: List[re.Pattern[str]] = [
    # system-role keywords and instruction overrides
    _compile(r"SYSTEM:"),
    _compile(r"ignore\s+(?:all\s+)?previous\s+instructions"),
    _compile(r"you\s+are\s+now"),
    _compile(r"new\s+instructions:"),
    _compile(r"disregard\s+(?:all\s+)?above"),
    _compile(r"forget\s+(?:all\s+)?previous"),
    _compile(r"override\s+instructions"),
    _compile(r"as\s+an\s+AI\s+assistant"),
    # command execution
    _compile(r"execute\s+command"),
    _compile(r"run\s+script"),
    _compile(r"eval\("),
    _compile(r"exec\("),
    # delimiter confusion
    _compile(r"```system"),
    _compile(r"\[SYSTEM\]"),
    _compile(r"<system>"),
    # role override
    _compile(r"you\s+must"),
    _compile(r"your\s+new\s+role"),
    _compile(r"switch\s+to\s+developer\s+mode"),
]

_ZERO_WIDTH = {
    "\N{ZERO WIDTH SPACE}": "Zero-width character",
    "\N{ZERO WIDTH NON-JOINER}": "Zero-width character",
    "\N{ZERO WIDTH JOINER}": "Zero-width character",
    "\N{WORD JOINER}": "Zero-width character",
    "\N{ZERO WIDTH NO-BREAK SPACE}": "Zero-width character",
    "\N{MONGOLIAN VOWEL SEPARATOR}": "Zero-width character",
    "\N{LEFT-TO-RIGHT EMBEDDING}": "Bidi control character",
    "\N{RIGHT-TO-LEFT EMBEDDING}": "Bidi control character",
    "\N{POP DIRECTIONAL FORMATTING}": "Bidi control character",
    "\N{LEFT-TO-RIGHT OVERRIDE}": "Bidi control character",
    "\N{RIGHT-TO-LEFT OVERRIDE}": "Bidi control character",
    "\N{LEFT-TO-RIGHT ISOLATE}": "Bidi control character",
    "\N{RIGHT-TO-LEFT ISOLATE}": "Bidi control character",
    "\N{FIRST STRONG ISOLATE}": "Bidi control character",
    "\N{POP DIRECTIONAL ISOLATE}": "Bidi control character",
}

_INVISIBLE_SPACES = re.compile(
    "[\N{NO-BREAK SPACE}\N{OGHAM SPACE MARK}\N{EN QUAD}-\N{HAIR SPACE}"
    "\N{NARROW NO-BREAK SPACE}\N{MEDIUM MATHEMATICAL SPACE}\N{IDEOGRAPHIC SPACE}]"
)

_HIDING_HINTS = [
    _compile(r"color:\s*white"),
    _compile(r"color:\s*#fff\b"),
    _compile(r"color:\s*rgb\(255,\s*255,\s*255\)"),
    _compile(r"opacity:\s*0(?![.\d])"),
    _compile(r"font-size:\s*0(?![.\d])"),
    _compile(r"display:\s*none"),
]

INSTRUCTIONAL_WORDS = (
    "must", "should", "always", "never", "required", "mandatory",
    "instruction", "command", "directive", "rule", "policy",
)
_INSTRUCTIONAL_RE = re.compile(
    r"\b(?:" + "|".join(INSTRUCTIONAL_WORDS) + r")\b", re.IGNORECASE
)

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SanitizationResult:
    """Outcome of one sanitization pass.

    ``removed`` holds human-readable descriptions (counts, matched phrases),
    never the surrounding content.
    """

    sanitized: str
    removed: List[str] = field(default_factory=list)
    flagged: bool = False
    reasons: List[str] = field(default_factory=list)
    removal_ratio: float = 0.0

    @property
    def reason(self) -> Optional[str]:
        return "; ".join(self.reasons) if self.reasons else None

    def to_dict(self) -> dict:
        return {
            "flagged": self.flagged,
            "reason": self.reason,
            "removed": list(self.removed),
            "removal_ratio": round(self.removal_ratio, 4),
        }


# ---------------------------------------------------------------------------
# ContentSanitizer
# ---------------------------------------------------------------------------

class ContentSanitizer:
    """Strips hidden text and injection phrasing from untrusted content."""

    def __init__(self, config: SanitizerConfig | None = None) -> None:
        self.config = config or SanitizerConfig()
        self._patterns: List[re.Pattern[str]] = list(DANGEROUS_PATTERNS)

    def add_pattern(self, pattern: str) -> None:
        self._patterns.append(_compile(pattern))

    def sanitize(self, text: str) -> SanitizationResult:
        removed: List[str] = []
        reasons: List[str] = []

        sanitized, hidden = self._remove_hidden_text(text)
        if hidden:
            removed.extend(hidden)
            reasons.append(REASON_HIDDEN_TEXT)

        sanitized = unicodedata.normalize("NFC", sanitized)

        sanitized, matches = self._redact_patterns(sanitized)
        if matches:
            removed.extend(matches)
            reasons.append(REASON_INJECTION)

        sanitized = normalize_whitespace(sanitized)

        if self.instruction_density(sanitized) > self.config.instruction_density_threshold:
            reasons.append(REASON_INSTRUCTIONS)

        ratio = removal_ratio(text, sanitized)
        if ratio > self.config.max_removal_ratio:
            reasons.append(REASON_OVER_REMOVAL)

        return SanitizationResult(
            sanitized=sanitized,
            removed=removed,
            flagged=bool(reasons),
            reasons=reasons,
            removal_ratio=ratio,
        )

    def validate_sanitization(self, original: str, sanitized: str) -> bool:
        """Self-check: no dangerous pattern survives and at most the allowed share was removed."""
        if any(p.search(sanitized) for p in self._patterns):
            return False
        return removal_ratio(original, sanitized) <= self.config.max_removal_ratio

    def instruction_density(self, text: str) -> float:
        words = text.split()
        if not words:
            return 0.0
        return len(_INSTRUCTIONAL_RE.findall(text)) / len(words)

    # -- steps ----------------------------------------------------------------

    def _remove_hidden_text(self, text: str) -> tuple[str, List[str]]:
        removed: List[str] = []
        for char, label in _ZERO_WIDTH.items():
            count = text.count(char)
            if count:
                removed.append(f"{label} (U+{ord(char):04X}) x{count}")
                text = text.replace(char, "")

        invisible = _INVISIBLE_SPACES.findall(text)
        if invisible:
            removed.append(f"Invisible Unicode characters x{len(invisible)}")
            text = _INVISIBLE_SPACES.sub(" ", text)

        for hint in _HIDING_HINTS:
            if hint.search(text):
                removed.append(f"Potential color-based hiding: {hint.pattern}")
        return text, removed

    def _redact_patterns(self, text: str) -> tuple[str, List[str]]:
        matches: List[str] = []
        # A replacement can splice two fragments into a new match.
        while True:
            changed = False
            for pattern in self._patterns:
                found = [m.group(0) for m in pattern.finditer(text)]
                if found:
                    matches.extend(found)
                    text = pattern.sub(REDACTION_MARKER, text)
                    changed = True
            if not changed:
                return text, matches


def normalize_whitespace(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def removal_ratio(original: str, sanitized: str) -> float:
    """Share of the original UTF-8 byte length that is gone from *sanitized*."""
    original_len = len(original.encode("utf-8"))
    if original_len == 0:
        return 0.0
    return max(0.0, 1 - len(sanitized.encode("utf-8")) / original_len)
