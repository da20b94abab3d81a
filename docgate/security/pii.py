"""PII detection rules.

Regex-based rules for common PII types (SSN, credit card with Luhn
validation, email, phone, IP address).  The SecretScanner appends these to
its rule set when PII scanning is enabled.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from .types import Severity


@dataclass(frozen=True)
class ScanRule:
    """One detection rule: a compiled regex plus an optional match validator."""

    name: str
    regex: re.Pattern[str]
    severity: Severity
    validator: Optional[Callable[[str], bool]] = None

    def accepts(self, value: str) -> bool:
        return self.validator is None or self.validator(value)


# ---------------------------------------------------------------------------
# Luhn check
# ---------------------------------------------------------------------------

def luhn_check(digits: str) -> bool:
    """Return True if *digits* passes the Luhn algorithm."""
    nums = [int(d) for d in digits if d.isdigit()]
    if len(nums) < 13:
        return False
    checksum = 0
    for i, n in enumerate(reversed(nums)):
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        checksum += n
    return checksum % 10 == 0


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

PII_RULES: List[ScanRule] = [
    ScanRule(
        "SSN",
        re.compile(r"(?<!\d)\d{3}-\d{2}-\d{4}(?!\d)"),
        Severity.HIGH,
    ),
    ScanRule(
        "CREDIT_CARD",
        re.compile(r"(?<!\d)(?:\d{4}[-\s]?){3}\d{4}(?!\d)"),
        Severity.HIGH,
        validator=lambda m: luhn_check(re.sub(r"[\s-]", "", m)),
    ),
    ScanRule(
        "EMAIL",
        re.compile(r"[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\.[a-zA-Z0-9-.]+"),
        Severity.LOW,
    ),
    ScanRule(
        "PHONE",
        re.compile(
            r"(?<![\d-])"
            r"(?:\+?1[-.\s]?)?"
            r"(?:\(?\d{3}\)?[-.\s]?)"
            r"\d{3}[-.\s]?\d{4}"
            r"(?![\d-])"
        ),
        Severity.LOW,
    ),
    ScanRule(
        "IP_ADDRESS",
        re.compile(
            r"(?<![\d.])"
            r"(?:(?:25[0-5]|2[0-4]\d|[01]?\d\d?)\.){3}"
            r"(?:25[0-5]|2[0-4]\d|[01]?\d\d?)"
            r"(?![\d.])"
        ),
        Severity.LOW,
    ),
]
