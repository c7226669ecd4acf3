"""
Alert Service for operations notifications.

Posts alerts to ALERT_WEBHOOK_URL. A Slack incoming-webhook block payload
is tried first; if it is rejected the same alert is sent as plain JSON:

    {"event", "severity", "message", "details", "timestamp"}

Alerts are best effort. Nothing here raises to the caller, and without a
webhook configured every call is a no-op.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from fantasy_sync.core.config import Settings
from fantasy_sync.core.logging import get_logger
from fantasy_sync.utils.timezone import isoformat_utc, utcnow

logger = get_logger(__name__)

SEVERITY_EMOJI = {
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "🚨",
}

# Slack caps a section block at 10 fields
MAX_SLACK_FIELDS = 10


@dataclass
class SyncFailureAlert:
    """Details of a failed game sync."""
    game_key: str
    error: str
    game_name: Optional[str] = None
    failed_pages: List[int] = field(default_factory=list)
    total_pages: Optional[int] = None
    users_synced: int = 0
    last_successful_sync: Optional[datetime] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class AlertPayload:
    event: str
    severity: str
    message: str
    details: Dict[str, Any]
    timestamp: str

    def to_json(self) -> Dict[str, Any]:
        return {
            "event": self.event,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def to_slack(self) -> Dict[str, Any]:
        emoji = SEVERITY_EMOJI.get(self.severity, "")
        return {
            "text": f"{emoji} *{self.event}*",
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": f"{emoji} {self.event}", "emoji": True},
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": self.message},
                },
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*{key}:*\n{value}"}
                        for key, value in list(self.details.items())[:MAX_SLACK_FIELDS]
                    ],
                },
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"Timestamp: {self.timestamp}"}],
                },
            ],
        }


class AlertNotifier:
    """Webhook alert sender."""

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or None
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "AlertNotifier":
        return cls(settings.ALERT_WEBHOOK_URL, timeout=settings.ALERT_REQUEST_TIMEOUT, **kwargs)

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    async def _post(self, body: Dict[str, Any]) -> Optional[httpx.Response]:
        """POST a body to the webhook. Returns None when the webhook could not be reached."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=body)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Error sending alert to webhook {self.webhook_url[:30]}...: {e}")
            return None

        if not response.is_success:
            logger.error(f"Alert webhook rejected payload: {response.status_code} {response.reason_phrase}")
        return response

    async def send(self, payload: AlertPayload) -> bool:
        """
        Send an alert, Slack format first. Plain JSON is tried only when the
        webhook answered and rejected the Slack body.

        Returns:
            True if either format was accepted
        """
        if not self.is_configured:
            logger.debug("Alert webhook not configured, skipping alert")
            return False

        response = await self._post(payload.to_slack())
        if response is None:
            return False
        if response.is_success:
            logger.info(f"Slack alert sent: {payload.event}")
            return True

        response = await self._post(payload.to_json())
        if response is not None and response.is_success:
            logger.info(f"Alert sent: {payload.event}")
            return True

        return False

    async def notify_sync_failure(self, alert: SyncFailureAlert) -> bool:
        payload = AlertPayload(
            event="Sync Failure",
            severity="error",
            message=f"Sync failed for game *{alert.game_key}*: {alert.error}",
            details={
                "game_key": alert.game_key,
                "game_name": alert.game_name or "N/A",
                "error": alert.error,
                "failed_pages": ", ".join(str(p) for p in alert.failed_pages) or "N/A",
                "total_pages": alert.total_pages or "N/A",
                "users_synced": alert.users_synced,
                "last_successful_sync": isoformat_utc(alert.last_successful_sync) or "Never",
            },
            timestamp=isoformat_utc(alert.timestamp),
        )
        return await self.send(payload)

    async def notify_sync_recovered(self, game_key: str, users_synced: int) -> bool:
        payload = AlertPayload(
            event="Sync Recovered",
            severity="info",
            message=f"Sync recovered for *{game_key}*",
            details={"game_key": game_key, "users_synced": users_synced},
            timestamp=isoformat_utc(utcnow()),
        )
        return await self.send(payload)

    async def notify_trigger_failure(self, game_key: str, trigger_type: str, round_index: int, error: str) -> bool:
        payload = AlertPayload(
            event="Campaign Trigger Failure",
            severity="warning",
            message=f"Trigger *{trigger_type}* failed for *{game_key}*: {error}",
            details={
                "game_key": game_key,
                "trigger_type": trigger_type,
                "round": round_index,
                "error": error,
            },
            timestamp=isoformat_utc(utcnow()),
        )
        return await self.send(payload)
