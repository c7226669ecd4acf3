"""
Campaign dispatcher for the marketing campaign API.

Sends a broadcast campaign trigger:
    POST {CAMPAIGN_API_URL}/campaigns/trigger/send
    {"campaign_id": ..., "trigger_properties": {...}, "broadcast": true}

When CAMPAIGN_API_URL / CAMPAIGN_API_KEY are not set the dispatcher does
nothing and returns a skipped result. Callers must check `skipped` before
treating a result as a real send.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from fantasy_sync.core.config import Settings
from fantasy_sync.core.exceptions import CampaignResponseError, CampaignTimeoutError
from fantasy_sync.core.logging import get_logger
from fantasy_sync.core.metrics import campaign_dispatch_total

logger = get_logger(__name__)

SKIPPED_MESSAGE = "Skipped - no campaign credentials"


@dataclass
class DispatchResult:
    """Outcome of a dispatch call that did not raise."""
    response: Dict[str, Any] = field(default_factory=dict)
    skipped: bool = False


class CampaignDispatcher:
    """Client for the campaign trigger endpoint."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "CampaignDispatcher":
        return cls(
            api_url=settings.CAMPAIGN_API_URL,
            api_key=settings.CAMPAIGN_API_KEY,
            timeout=settings.CAMPAIGN_REQUEST_TIMEOUT,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def dispatch(self, campaign_id: str, properties: Dict[str, Any]) -> DispatchResult:
        """
        Trigger a campaign for its whole segment.

        Args:
            campaign_id: Campaign identifier in the campaign system
            properties: Trigger properties passed through to the campaign

        Returns:
            DispatchResult with the decoded response body, or skipped=True
            when no credentials are configured

        Raises:
            CampaignTimeoutError: No answer within the timeout
            CampaignResponseError: Non-2xx answer, non-JSON body or transport failure
        """
        if not self.is_configured:
            logger.info(f"Skipping campaign {campaign_id} - no campaign credentials configured")
            campaign_dispatch_total.labels(outcome="skipped").inc()
            return DispatchResult(response={"message": SKIPPED_MESSAGE}, skipped=True)

        payload = {
            "campaign_id": campaign_id,
            "trigger_properties": properties or {},
            "broadcast": True,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_url}/campaigns/trigger/send",
                    json=payload,
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            campaign_dispatch_total.labels(outcome="timeout").inc()
            logger.error(f"Campaign request timeout for {campaign_id}")
            raise CampaignTimeoutError("Campaign request timeout") from e
        except httpx.RequestError as e:
            campaign_dispatch_total.labels(outcome="error").inc()
            logger.error(f"Campaign request error for {campaign_id}: {e}")
            raise CampaignResponseError(f"Campaign request error: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            campaign_dispatch_total.labels(outcome="error").inc()
            logger.error(f"Campaign API returned non-JSON response ({response.status_code})")
            raise CampaignResponseError(
                "Invalid response from campaign API", status_code=response.status_code
            ) from e

        if not response.is_success:
            campaign_dispatch_total.labels(outcome="error").inc()
            message = data.get("message") if isinstance(data, dict) else None
            logger.error(f"Campaign trigger failed ({response.status_code}): {data}")
            raise CampaignResponseError(
                message or "Campaign API error",
                status_code=response.status_code,
                response=data if isinstance(data, dict) else None,
            )

        campaign_dispatch_total.labels(outcome="success").inc()
        logger.info(f"Campaign {campaign_id} triggered", extra={"campaign_response": data})
        return DispatchResult(response=data if isinstance(data, dict) else {"body": data})
