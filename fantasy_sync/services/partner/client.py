"""
Partner game API client.

Read-only access to the partner's season API:
- Game metadata with rounds (GET /season/subsites/{subsite}/games/{game_key})
- Element catalog (GET .../games/{game_key}/elements)
- Paginated users with their teams (GET .../games/{game_key}/users)
- API key check (GET /apikeycheck)

Error policy:
- Timeouts, transport failures, HTTP 408/429/5xx and unreadable JSON raise
  TransientError.
- Any other HTTP 4xx, or a JSON body of the wrong shape, raises PermanentError.
- Only the users page call retries (exponential backoff, TransientError only).
  Every other call surfaces its error to the caller as is.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fantasy_sync.core.config import Settings
from fantasy_sync.core.exceptions import PermanentError, TransientError, classify_status
from fantasy_sync.core.logging import get_logger
from fantasy_sync.core.metrics import record_partner_request
from fantasy_sync.services.partner.schemas import (
    PartnerElement,
    PartnerGameMeta,
    PartnerUsersPage,
)

logger = get_logger(__name__)

VALID_KEY_MESSAGE = "Ok: Valid API Key"

_elements_adapter = TypeAdapter(List[PartnerElement])


class PartnerApiClient:
    """
    Async client for the partner game API.

    Usage:
        async with PartnerApiClient.from_settings(settings) as client:
            meta = await client.get_game_meta("aftonbladet", "premier-league")
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        max_page_size: int = 10,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the partner client.

        Args:
            base_url: Partner API root, without trailing slash
            api_key: Static key sent as the x-api-key header
            timeout: Per-request timeout in seconds
            max_page_size: Upstream page size limit; larger requests are clamped
            max_retries: Retries after the first attempt (users pages only)
            retry_base_delay: First backoff delay; doubles on each retry
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Coroutine used for backoff waits
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.max_page_size = max_page_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PartnerApiClient":
        return cls(
            base_url=settings.PARTNER_API_BASE_URL,
            api_key=settings.PARTNER_API_KEY,
            timeout=settings.PARTNER_API_TIMEOUT,
            max_page_size=settings.PARTNER_MAX_PAGE_SIZE,
            max_retries=settings.PARTNER_MAX_RETRIES,
            retry_base_delay=settings.PARTNER_RETRY_BASE_DELAY,
            **kwargs,
        )

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Accept": "application/json",
            "User-Agent": "fantasy-sync/1.0",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PartnerApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ========================================================================
    # Transport
    # ========================================================================

    async def _request(self, endpoint: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a partner path and return the decoded JSON body.

        Args:
            endpoint: Short endpoint name for logs and metrics
            path: Path relative to base_url
            params: Query parameters

        Raises:
            TransientError: Timeout, transport failure, 408/429/5xx, invalid JSON
            PermanentError: Any other 4xx
        """
        client = await self._get_client()
        logger.debug(f"Partner API GET {path}", extra={"endpoint": endpoint, "params": params})

        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            record_partner_request(endpoint, "transient")
            logger.error(f"Partner API request timeout after {self.timeout}s: {path}")
            raise TransientError(f"Request timeout after {self.timeout}s") from e
        except httpx.RequestError as e:
            record_partner_request(endpoint, "transient")
            logger.error(f"Partner API request error on {path}: {e}")
            raise TransientError(f"Request error: {e}") from e

        if not response.is_success:
            error_class = classify_status(response.status_code)
            outcome = "permanent" if error_class is PermanentError else "transient"
            record_partner_request(endpoint, outcome)
            logger.error(
                f"Partner API error {response.status_code} on {path}: {response.text[:200]}",
                extra={"endpoint": endpoint, "status_code": response.status_code},
            )
            raise error_class(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            record_partner_request(endpoint, "transient")
            logger.error(f"Partner API returned invalid JSON on {path}")
            raise TransientError("Invalid JSON response from partner API", status_code=response.status_code) from e

        record_partner_request(endpoint, "success")
        return data

    @staticmethod
    def _validate(endpoint: str, validator: Callable[[Any], Any], data: Any) -> Any:
        try:
            return validator(data)
        except ValidationError as e:
            logger.error(f"Unexpected partner payload for {endpoint}: {e.error_count()} validation errors")
            raise PermanentError(f"Unexpected {endpoint} payload: {e.errors()[0]['msg']}") from e

    @staticmethod
    def _game_path(subsite: str, game_key: str) -> str:
        return f"/season/subsites/{subsite}/games/{game_key}"

    # ========================================================================
    # Endpoints
    # ========================================================================

    async def get_game_meta(self, subsite: str, game_key: str) -> PartnerGameMeta:
        """Fetch game metadata including every round. Not retried."""
        data = await self._request("game", self._game_path(subsite, game_key))
        return self._validate("game", PartnerGameMeta.model_validate, data)

    async def get_elements(self, subsite: str, game_key: str) -> List[PartnerElement]:
        """Fetch the full element catalog. Not retried."""
        data = await self._request("elements", f"{self._game_path(subsite, game_key)}/elements")
        return self._validate("elements", _elements_adapter.validate_python, data)

    async def get_users_page(
        self,
        subsite: str,
        game_key: str,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> PartnerUsersPage:
        """
        Fetch one page of users with their teams.

        Transient failures are retried max_retries times with waits of
        retry_base_delay * 2^(attempt-1). The last failure is re-raised.

        Args:
            subsite: Partner subsite key
            game_key: Partner game key
            page: 1-based page number
            page_size: Requested page size, clamped to max_page_size
        """
        size = min(page_size or self.max_page_size, self.max_page_size)
        path = f"{self._game_path(subsite, game_key)}/users"
        params = {
            "includeUserteams": "true",
            "includeLineups": "false",
            "page": page,
            "pageSize": size,
        }

        retrying = AsyncRetrying(
            sleep=self._sleep,
            retry=retry_if_exception_type(TransientError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_base_delay, exp_base=2),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                data = await self._request("users", path, params=params)
                return self._validate("users", PartnerUsersPage.model_validate, data)

    async def verify_key(self) -> bool:
        """
        Check the configured API key.

        Returns:
            True when the partner answers with the valid-key message, False
            on any other answer or an authentication rejection (401/403)

        Raises:
            TransientError: The check could not be performed
        """
        try:
            data = await self._request("apikeycheck", "/apikeycheck")
        except PermanentError as e:
            if e.status_code in (401, 403):
                return False
            raise
        return isinstance(data, dict) and data.get("message") == VALID_KEY_MESSAGE
