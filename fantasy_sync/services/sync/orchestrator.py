"""Sync orchestrator for reconciling one fantasy game with the partner API.

A run has three phases, strictly in order. Any phase error aborts the run:
1. metadata: game meta and rounds -> round state, timing, users_total
2. elements: full catalog, upserted in batches (a failed batch is skipped)
3. users:    paginated users, each page persisted as soon as it arrives

Every run writes one SyncLog row ('started' -> 'completed' | 'failed').
Failures are alerted and re-raised as SyncFailedError; the message of the
first fatal error is kept verbatim.

The run budget (SYNC_RUN_TIMEOUT_SECONDS) is only checked between phases and
between pages, so a batch or page upsert is never interrupted.
"""
import asyncio
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fantasy_sync.core.config import Settings
from fantasy_sync.core.exceptions import (
    PartnerApiError,
    RunTimeoutError,
    SyncFailedError,
    SyncPhaseError,
    ThresholdExceededError,
)
from fantasy_sync.core.logging import get_logger
from fantasy_sync.core.metrics import (
    record_sync_run,
    sync_failed_batches_total,
    sync_failed_pages_total,
    sync_records_total,
)
from fantasy_sync.models import Game, RoundState, SyncStatus, SyncType
from fantasy_sync.repositories import (
    ElementRepository,
    GameRepository,
    SyncLogRepository,
    UserGameStatRepository,
)
from fantasy_sync.services.alert_service import AlertNotifier, SyncFailureAlert
from fantasy_sync.services.partner.client import PartnerApiClient
from fantasy_sync.services.partner.schemas import (
    PartnerElement,
    PartnerGameMeta,
    PartnerUser,
)
from fantasy_sync.utils.timezone import parse_partner_datetime, utcnow

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Counts of one game sync run."""
    game_key: str
    elements_synced: int = 0
    users_synced: int = 0
    failed_element_batches: List[int] = field(default_factory=list)
    failed_pages: List[int] = field(default_factory=list)
    total_pages: int = 0
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def derive_game_state(meta: PartnerGameMeta, game_key: str, game_base_url: str) -> Dict[str, Any]:
    """
    Derive the stored round state of a game from partner metadata.

    The open round drives everything when there is one. Without it, start
    and deadline come from the nearest pending round, and end time and
    displayed state from the most recent ended round.

    Returns:
        Game column values to persist
    """
    open_round = next((r for r in meta.rounds if r.state == RoundState.CURRENT_OPEN.value), None)
    pending = sorted(
        (r for r in meta.rounds if r.state == RoundState.PENDING.value),
        key=lambda r: r.index,
    )
    ended = sorted(
        (r for r in meta.rounds if r.state in RoundState.ended_states()),
        key=lambda r: r.index,
    )
    next_pending = pending[0] if pending else None
    last_ended = ended[-1] if ended else None

    if open_round:
        round_state = open_round.state
        deadline = open_round.trade_closes
        start = open_round.start
        end = open_round.end
    else:
        round_state = last_ended.state if last_ended else None
        deadline = next_pending.trade_closes if next_pending else None
        start = next_pending.start if next_pending else None
        end = last_ended.end if last_ended else None

    fields = {
        "partner_game_id": meta.game_id,
        "total_rounds": len(meta.rounds),
        "round_state": round_state,
        "next_trade_deadline": parse_partner_datetime(deadline),
        "current_round_start": parse_partner_datetime(start),
        "current_round_end": parse_partner_datetime(end),
        "users_total": meta.userteams_count,
        "game_url": f"{game_base_url.rstrip('/')}/{game_key}",
    }

    current_round = open_round.index if open_round else meta.current_round_index
    if current_round is not None:
        fields["current_round"] = current_round
    return fields


class SyncOrchestrator:
    """
    Runs the full reconciliation of one game.

    One orchestrator works on one database session; concurrent game syncs
    each get their own orchestrator and session.
    """

    def __init__(
        self,
        db: Session,
        partner_client: PartnerApiClient,
        alert_notifier: AlertNotifier,
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the sync orchestrator.

        Args:
            db: SQLAlchemy database session
            partner_client: Partner API client
            alert_notifier: Failure/recovery alert sender
            settings: Application settings
            sleep: Coroutine used for the delay between user pages
            clock: Monotonic clock (seconds) for the run budget
        """
        self.db = db
        self.partner = partner_client
        self.alerts = alert_notifier
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

        self.games = GameRepository(db)
        self.elements = ElementRepository(db)
        self.user_stats = UserGameStatRepository(db)
        self.sync_logs = SyncLogRepository(db)

    # ========================================================================
    # Full run
    # ========================================================================

    async def sync_game(self, game: Game, sync_type: SyncType = SyncType.MANUAL) -> SyncResult:
        """
        Sync game details, elements and users for one game.

        Raises:
            SyncFailedError: A phase failed; the run is logged and alerted
        """
        started = self._clock()
        run_deadline = started + self.settings.SYNC_RUN_TIMEOUT_SECONDS
        result = SyncResult(game_key=game.game_key)
        last_good_sync = game.last_synced_at
        game_key = game.game_key

        previous = self.sync_logs.last_finalized(game.id)
        sync_log = self.sync_logs.start(game.id, sync_type.value)
        logger.info(f"Starting {sync_type.value} sync for {game_key}", extra={"game_key": game_key})

        phase = "metadata"
        try:
            await self.sync_game_details(game)

            phase = "elements"
            self._check_budget(run_deadline, phase)
            await self.sync_elements(game, result)

            phase = "users"
            self._check_budget(run_deadline, phase)
            await self.sync_users(game, result, run_deadline)

        except Exception as e:
            if isinstance(e, SyncPhaseError):
                phase = e.phase
            message = e.message if isinstance(e, (PartnerApiError, SyncPhaseError)) else str(e)
            result.duration_ms = self._elapsed_ms(started)
            logger.error(
                f"Sync failed for {game_key} in {phase} phase: {message}",
                extra={"game_key": game_key, "phase": phase},
            )

            self.db.rollback()
            self.sync_logs.finalize(
                sync_log,
                SyncStatus.FAILED,
                users_synced=result.users_synced,
                elements_synced=result.elements_synced,
                error_message=message,
            )
            record_sync_run(sync_type.value, SyncStatus.FAILED.value, result.duration_ms / 1000)

            await self.alerts.notify_sync_failure(SyncFailureAlert(
                game_key=game_key,
                game_name=game.name,
                error=message,
                failed_pages=list(result.failed_pages),
                total_pages=result.total_pages or None,
                users_synced=result.users_synced,
                last_successful_sync=last_good_sync,
            ))
            raise SyncFailedError(game_key, phase, message, result) from e

        result.duration_ms = self._elapsed_ms(started)
        self.sync_logs.finalize(
            sync_log,
            SyncStatus.COMPLETED,
            users_synced=result.users_synced,
            elements_synced=result.elements_synced,
        )
        record_sync_run(sync_type.value, SyncStatus.COMPLETED.value, result.duration_ms / 1000)

        logger.info(
            f"Completed sync for {game_key}: {result.elements_synced} elements, "
            f"{result.users_synced} users ({result.duration_ms}ms)",
            extra={"game_key": game_key},
        )

        if previous is not None and previous.status == SyncStatus.FAILED.value:
            await self.alerts.notify_sync_recovered(game_key, result.users_synced)

        return result

    # ========================================================================
    # Phases
    # ========================================================================

    async def sync_game_details(self, game: Game) -> Game:
        """Fetch game meta and persist the derived round state."""
        logger.info(f"Syncing game details for {game.game_key}")
        meta = await self.partner.get_game_meta(game.subsite_key, game.game_key)
        fields = derive_game_state(meta, game.game_key, self.settings.GAME_BASE_URL)
        return self.games.update_sync_state(game, fields, synced_at=utcnow())

    async def sync_elements(self, game: Game, result: SyncResult) -> int:
        """
        Fetch the element catalog and upsert it in batches.

        A batch that cannot be written is rolled back, recorded in
        result.failed_element_batches and skipped.
        """
        logger.info(f"Syncing elements for {game.game_key}")
        elements = await self.partner.get_elements(game.subsite_key, game.game_key)
        batch_size = self.settings.SYNC_BATCH_SIZE
        game_id = game.id
        now = utcnow()

        for batch_number, offset in enumerate(range(0, len(elements), batch_size), start=1):
            batch = elements[offset:offset + batch_size]
            rows = [self._element_row(game_id, element, now) for element in batch]
            try:
                self.elements.upsert_batch(game_id, rows)
            except SQLAlchemyError as e:
                self.db.rollback()
                result.failed_element_batches.append(batch_number)
                sync_failed_batches_total.inc()
                logger.error(
                    f"Failed to upsert elements batch {batch_number} ({len(batch)} elements): {e}",
                    extra={"game_key": result.game_key, "batch": batch_number},
                )
                continue
            result.elements_synced += len(batch)

        sync_records_total.labels(record_type="element").inc(result.elements_synced)
        logger.info(f"Synced {result.elements_synced}/{len(elements)} elements for {result.game_key}")
        return result.elements_synced

    async def sync_users(self, game: Game, result: SyncResult, run_deadline: Optional[float] = None) -> int:
        """
        Fetch users page by page, persisting each page on arrival.

        Page 1 must be fetched to learn the page count; its failure fails the
        phase. Later pages that cannot be fetched (after retries) or written
        are recorded in result.failed_pages.

        Raises:
            ThresholdExceededError: Failed pages exceed SYNC_PAGE_FAILURE_THRESHOLD
            RunTimeoutError: The run budget ran out between pages
        """
        game_id = game.id
        game_key = game.game_key
        subsite = game.subsite_key
        logger.info(f"Syncing users for {game_key} with progressive saving")

        first_page = await self.partner.get_users_page(subsite, game_key, 1)
        total_pages = first_page.pages
        result.total_pages = total_pages
        logger.info(
            f"Starting progressive user sync for {game_key}: "
            f"{total_pages} pages, {first_page.users_total} users"
        )

        self._save_users_page(game_id, first_page.users, 1, result)

        for page in range(2, total_pages + 1):
            if run_deadline is not None:
                self._check_budget(run_deadline, "users")
            await self._sleep(self.settings.SYNC_PAGE_DELAY_SECONDS)

            try:
                response = await self.partner.get_users_page(subsite, game_key, page)
            except PartnerApiError as e:
                result.failed_pages.append(page)
                sync_failed_pages_total.inc()
                logger.error(
                    f"Failed to fetch users page {page}/{total_pages} for {game_key}: {e.message}",
                    extra={"game_key": game_key, "page": page},
                )
                continue

            self._save_users_page(game_id, response.users, page, result)

        sync_records_total.labels(record_type="user").inc(result.users_synced)

        if result.failed_pages:
            logger.warning(
                f"Completed users sync for {game_key} with failed pages {result.failed_pages} "
                f"({result.users_synced} users, {total_pages} pages)"
            )
        else:
            logger.info(f"Completed users sync for {game_key}: {result.users_synced} users, {total_pages} pages")

        if total_pages and len(result.failed_pages) / total_pages > self.settings.SYNC_PAGE_FAILURE_THRESHOLD:
            raise ThresholdExceededError(list(result.failed_pages), total_pages)

        return result.users_synced

    # ========================================================================
    # Helpers
    # ========================================================================

    def _save_users_page(self, game_id: str, users: List[PartnerUser], page: int, result: SyncResult) -> int:
        """Persist one page. Users without an external id are dropped."""
        now = utcnow()
        rows = [self._user_row(game_id, user, now) for user in users if user.external_id]
        if not rows:
            return 0

        try:
            self.user_stats.upsert_page(game_id, rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            result.failed_pages.append(page)
            sync_failed_pages_total.inc()
            logger.error(
                f"Failed to save users page {page} ({len(rows)} users): {e}",
                extra={"game_key": result.game_key, "page": page},
            )
            return 0

        result.users_synced += len(rows)
        return len(rows)

    @staticmethod
    def _element_row(game_id: str, element: PartnerElement, now: datetime) -> Dict[str, Any]:
        return {
            "game_id": game_id,
            "element_id": element.element_id,
            "short_name": element.short_name,
            "full_name": element.full_name,
            "team_name": element.team_name or "",
            "image_url": element.image_url,
            "popularity": element.popularity,
            "trend": element.trend,
            "growth": element.growth,
            "total_growth": element.total_growth,
            "value": element.value,
            "is_injured": element.is_injured,
            "is_suspended": element.is_suspended,
            "updated_at": now,
        }

    @staticmethod
    def _user_row(game_id: str, user: PartnerUser, now: datetime) -> Dict[str, Any]:
        team = user.primary_team
        return {
            "game_id": game_id,
            "external_id": user.external_id,
            "partner_user_id": user.id,
            "team_name": (team.name if team and team.name else None) or user.name or "Unknown",
            "score": team.score if team else 0,
            "rank": team.rank if team else None,
            "round_score": team.round_score if team else 0,
            "round_rank": team.round_rank if team else None,
            "round_jump": team.round_jump if team else 0,
            "injured_count": user.injured,
            "suspended_count": user.suspended,
            "lineup_element_ids": list(team.lineup_element_ids) if team else [],
            "synced_at": now,
        }

    def _check_budget(self, run_deadline: float, phase: str) -> None:
        if self._clock() > run_deadline:
            raise RunTimeoutError(
                phase,
                f"Sync exceeded run budget of {self.settings.SYNC_RUN_TIMEOUT_SECONDS}s before {phase} step",
            )

    def _elapsed_ms(self, started: float) -> int:
        return int((self._clock() - started) * 1000)
