"""Tests for the webhook AlertNotifier."""
import json
from datetime import datetime

import httpx
import pytest

from fantasy_sync.services.alert_service import AlertNotifier, AlertPayload, SyncFailureAlert

WEBHOOK = "https://hooks.test/services/T000/B000"


class Webhook:
    """Fake webhook that answers with queued statuses."""

    def __init__(self, *statuses: int):
        self.statuses = list(statuses)
        self.bodies = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, text="ok")


def make_notifier(webhook: Webhook) -> AlertNotifier:
    return AlertNotifier(WEBHOOK, transport=httpx.MockTransport(webhook.handler))


# ─────────────────────────────────────────────────────────────────────────────
# Payload formats
# ─────────────────────────────────────────────────────────────────────────────

class TestAlertPayload:

    def test_slack_format(self):
        """Should build header, message, fields and context blocks."""
        payload = AlertPayload(
            event="Sync Failure",
            severity="error",
            message="Sync failed",
            details={f"key{i}": i for i in range(12)},
            timestamp="2026-03-01T12:00:00Z",
        )

        slack = payload.to_slack()

        assert [b["type"] for b in slack["blocks"]] == ["header", "section", "section", "context"]
        assert "Sync Failure" in slack["blocks"][0]["text"]["text"]
        assert len(slack["blocks"][2]["fields"]) == 10

    def test_json_format(self):
        """Should expose the plain JSON fallback body."""
        payload = AlertPayload("Sync Recovered", "info", "ok", {"game_key": "x"}, "2026-03-01T12:00:00Z")

        assert payload.to_json() == {
            "event": "Sync Recovered",
            "severity": "info",
            "message": "ok",
            "details": {"game_key": "x"},
            "timestamp": "2026-03-01T12:00:00Z",
        }


# ─────────────────────────────────────────────────────────────────────────────
# Delivery
# ─────────────────────────────────────────────────────────────────────────────

class TestAlertNotifier:

    @pytest.mark.asyncio
    async def test_slack_accepted(self):
        """Should send once when the Slack payload is accepted."""
        webhook = Webhook(200)

        sent = await make_notifier(webhook).notify_sync_recovered("premier-league", 1200)

        assert sent is True
        assert len(webhook.bodies) == 1
        assert "blocks" in webhook.bodies[0]

    @pytest.mark.asyncio
    async def test_falls_back_to_json(self):
        """Should resend as plain JSON when the Slack payload is rejected."""
        webhook = Webhook(400, 200)
        alert = SyncFailureAlert(
            game_key="premier-league",
            error="Too many failed pages: 2/11 (18%)",
            failed_pages=[4, 9],
            total_pages=11,
            users_synced=90,
            last_successful_sync=datetime(2026, 3, 1, 9, 30),
        )

        sent = await make_notifier(webhook).notify_sync_failure(alert)

        assert sent is True
        assert len(webhook.bodies) == 2
        body = webhook.bodies[1]
        assert body["event"] == "Sync Failure"
        assert body["severity"] == "error"
        assert body["details"]["failed_pages"] == "4, 9"
        assert body["details"]["error"] == "Too many failed pages: 2/11 (18%)"
        assert body["details"]["last_successful_sync"] == "2026-03-01T09:30:00Z"

    @pytest.mark.asyncio
    async def test_never_synced(self):
        """Should report 'Never' when the game has no successful sync."""
        webhook = Webhook(400, 200)

        await make_notifier(webhook).notify_sync_failure(SyncFailureAlert(game_key="shl", error="HTTP 500"))

        assert webhook.bodies[1]["details"]["last_successful_sync"] == "Never"

    @pytest.mark.asyncio
    async def test_both_formats_rejected(self):
        """Should return False when neither format is accepted."""
        webhook = Webhook(500, 500)

        assert await make_notifier(webhook).notify_trigger_failure("shl", "round_ended", 4, "boom") is False

    @pytest.mark.asyncio
    async def test_transport_error_swallowed(self):
        """Should never raise, and not retry as plain JSON, when the webhook is unreachable."""
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        notifier = AlertNotifier(WEBHOOK, transport=httpx.MockTransport(handler))

        assert await notifier.notify_sync_recovered("shl", 0) is False
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_unconfigured_is_noop(self):
        """Should do nothing without a webhook URL."""
        webhook = Webhook()
        notifier = AlertNotifier(None, transport=httpx.MockTransport(webhook.handler))

        assert notifier.is_configured is False
        assert await notifier.notify_sync_recovered("shl", 0) is False
        assert webhook.bodies == []
