"""Tests for docgate.security.notifications."""

import io
import logging

import pytest
from rich.console import Console

from docgate.security import ConsoleNotifier, LoggingNotifier, Notifier, RecordingNotifier, Severity
from docgate.security.notifications import SecurityAlert, send_alert


def alert(severity=Severity.CRITICAL):
    return SecurityAlert(
        title="Unexpected folder access",
        message="Service account can see folders outside the whitelist",
        severity=severity,
        category="permissions",
        details={"unexpected_folders": ["Marketing"]},
    )


class FailingNotifier(Notifier):
    async def notify(self, alert):
        raise ConnectionError("webhook down")


class TestNotifiers:
    """Delivery implementations."""

    @pytest.mark.asyncio
    async def test_logging_level_follows_severity(self, caplog):
        with caplog.at_level(logging.INFO, logger="docgate.security"):
            await LoggingNotifier().notify(alert(Severity.MEDIUM))
        assert caplog.records[-1].levelno == logging.WARNING
        assert "[permissions] Unexpected folder access" in caplog.records[-1].getMessage()

    @pytest.mark.asyncio
    async def test_console_panel(self):
        buffer = io.StringIO()
        notifier = ConsoleNotifier(Console(file=buffer, width=100))
        await notifier.notify(alert())
        output = buffer.getvalue()
        assert "CRITICAL - Unexpected folder access" in output
        assert "['Marketing']" in output

    @pytest.mark.asyncio
    async def test_recording(self):
        notifier = RecordingNotifier()
        await send_alert(notifier, alert())
        assert [a.category for a in notifier.alerts] == ["permissions"]
        assert notifier.alerts[0].to_dict()["severity"] == "CRITICAL"

    @pytest.mark.asyncio
    async def test_send_alert_swallows_delivery_failure(self, caplog):
        await send_alert(FailingNotifier(), alert())
        assert "Failed to deliver security alert" in caplog.text
