"""
Error taxonomy for the sync and trigger engines.

- TransientError: network failures, timeouts, HTTP 408/429/5xx. Retryable.
- PermanentError: any other HTTP 4xx or an unexpected payload shape. Not retried.
- SyncPhaseError: a phase of a game sync failed; aborts the remaining phases.
  ThresholdExceededError and RunTimeoutError are the two policy failures.
- SyncFailedError: raised by SyncOrchestrator.sync_game once the run has been
  logged as failed and alerted.
- CampaignDispatchError: a campaign send did not happen. Timeouts are kept
  distinct from non-2xx responses.

Partial batch failures and missing optional credentials are not exceptions:
they are reported as data (SyncResult / DispatchResult).
"""
from typing import Any, Optional


class PartnerApiError(Exception):
    """Base class for partner API failures."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransientError(PartnerApiError):
    """Retryable partner API failure."""


class PermanentError(PartnerApiError):
    """Non-retryable partner API failure."""


def classify_status(status_code: int) -> type[PartnerApiError]:
    """Map a non-2xx HTTP status to its error class."""
    if status_code in (408, 429):
        return TransientError
    if 400 <= status_code < 500:
        return PermanentError
    return TransientError


class SyncPhaseError(Exception):
    """A sync phase failed; the run cannot continue."""

    def __init__(self, phase: str, message: str):
        super().__init__(message)
        self.phase = phase
        self.message = message


class ThresholdExceededError(SyncPhaseError):
    """Too many user pages failed for the phase to be trusted."""

    def __init__(self, failed_pages: list[int], total_pages: int):
        rate = len(failed_pages) / total_pages if total_pages else 1.0
        super().__init__(
            "users",
            f"Too many failed pages: {len(failed_pages)}/{total_pages} ({round(rate * 100)}%)",
        )
        self.failed_pages = failed_pages
        self.total_pages = total_pages


class RunTimeoutError(SyncPhaseError):
    """The run exceeded its time budget and was abandoned between steps."""


class SyncFailedError(Exception):
    """A game sync finished in the failed state."""

    def __init__(self, game_key: str, phase: str, message: str, result: Any = None):
        super().__init__(message)
        self.game_key = game_key
        self.phase = phase
        self.message = message
        self.result = result


class CampaignDispatchError(Exception):
    """Campaign API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


class CampaignTimeoutError(CampaignDispatchError):
    """Campaign API did not answer within the request timeout."""


class CampaignResponseError(CampaignDispatchError):
    """Campaign API answered with a non-2xx status or an unreadable body."""


class GameNotFoundError(LookupError):
    """No game with the requested id or key."""


class SyncInProgressError(Exception):
    """A sync of the same game is already running."""

    def __init__(self, game_key: str):
        super().__init__(f"Sync already in progress for {game_key}")
        self.game_key = game_key
