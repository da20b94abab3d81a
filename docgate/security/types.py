"""Shared security types."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER[self]


_SEVERITY_ORDER = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


def max_severity(severities: Iterable[Severity], default: Severity = Severity.LOW) -> Severity:
    """Highest severity in *severities*, or *default* when empty."""
    result = None
    for sev in severities:
        if result is None or sev.rank > result.rank:
            result = sev
    return result if result is not None else default
