"""
Security alerts and reviewer notifications.

The gateway raises alerts for permission drift, secrets found in source
documents, and items awaiting manual review.  Delivery is pluggable:

    LoggingNotifier - writes alerts to the ``docgate.security`` logger
    ConsoleNotifier - renders alerts as Rich panels on stderr
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from .types import Severity

logger = logging.getLogger("docgate.security")


@dataclass(frozen=True)
class SecurityAlert:
    """A notification for operators or reviewers."""

    title: str
    message: str
    severity: Severity
    category: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class Notifier(ABC):
    """Delivers security alerts. Delivery failures must not raise past the caller."""

    @abstractmethod
    async def notify(self, alert: SecurityAlert) -> None:
        """Deliver *alert*."""


class LoggingNotifier(Notifier):
    _LEVELS = {
        Severity.LOW: logging.INFO,
        Severity.MEDIUM: logging.WARNING,
        Severity.HIGH: logging.ERROR,
        Severity.CRITICAL: logging.CRITICAL,
    }

    async def notify(self, alert: SecurityAlert) -> None:
        logger.log(
            self._LEVELS[alert.severity],
            "[%s] %s: %s %s",
            alert.category, alert.title, alert.message, alert.details or "",
        )


class ConsoleNotifier(Notifier):
    _STYLES = {
        Severity.LOW: "blue",
        Severity.MEDIUM: "yellow",
        Severity.HIGH: "red",
        Severity.CRITICAL: "bold red",
    }

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    async def notify(self, alert: SecurityAlert) -> None:
        body = escape(alert.message)
        if alert.details:
            body += "\n\n" + "\n".join(f"[dim]{k}:[/dim] {escape(str(v))}" for k, v in alert.details.items())
        self.console.print(Panel(
            body,
            title=f"{alert.severity.value} - {escape(alert.title)}",
            border_style=self._STYLES[alert.severity],
        ))


class RecordingNotifier(Notifier):
    """Keeps alerts in memory for later inspection."""

    def __init__(self) -> None:
        self.alerts: list[SecurityAlert] = []

    async def notify(self, alert: SecurityAlert) -> None:
        self.alerts.append(alert)


async def send_alert(notifier: Notifier, alert: SecurityAlert) -> None:
    """Deliver *alert*, logging instead of raising if delivery fails."""
    try:
        await notifier.notify(alert)
    except Exception:
        logger.exception("Failed to deliver security alert %r", alert.title)
