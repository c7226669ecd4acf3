"""
Job entry points for the scheduler, the HTTP routes and the CLI.

- run_scheduled_sync: sync every due game; failures end up in the summary,
  never as an exception
- run_manual_sync: sync one game now; the failure is raised to the caller
- run_trigger_pass: evaluate every campaign trigger
- verify_partner_key: check the partner API key

Each game sync gets its own database session. Games run under a semaphore
of SYNC_MAX_CONCURRENT_GAMES, and a game is never synced twice at once:
an in-process lock per game plus a check for a recent 'started' SyncLog
(another process may be running it).
"""
import asyncio
import time
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from fantasy_sync.core.config import Settings
from fantasy_sync.core.exceptions import GameNotFoundError, SyncFailedError, SyncInProgressError
from fantasy_sync.core.logging import correlation_scope, get_correlation_id, get_logger
from fantasy_sync.models import SyncType
from fantasy_sync.repositories import GameRepository, SyncLogRepository
from fantasy_sync.services.alert_service import AlertNotifier
from fantasy_sync.services.partner.client import PartnerApiClient
from fantasy_sync.services.sync.orchestrator import SyncOrchestrator, SyncResult
from fantasy_sync.services.sync.scheduler import SyncScheduler
from fantasy_sync.services.triggers.campaign_dispatcher import CampaignDispatcher
from fantasy_sync.services.triggers.evaluator import TriggerEvaluator

logger = get_logger(__name__)


def _run_id(prefix: str) -> str:
    """Correlation id for a job; keeps the caller's id when one is bound."""
    return get_correlation_id() or f"{prefix}-{uuid.uuid4().hex[:12]}"


class SyncJobRunner:
    """
    Wires settings, sessions and clients into sync and trigger jobs.

    Usage:
        runner = SyncJobRunner.from_settings(settings, session_factory)
        summary = await runner.run_scheduled_sync()
        await runner.close()
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: Settings,
        partner_client: PartnerApiClient,
        alert_notifier: AlertNotifier,
        dispatcher: CampaignDispatcher,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.partner = partner_client
        self.alerts = alert_notifier
        self.dispatcher = dispatcher
        self._sleep = sleep
        self._clock = clock
        self._game_locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: Settings, session_factory: sessionmaker) -> "SyncJobRunner":
        return cls(
            session_factory=session_factory,
            settings=settings,
            partner_client=PartnerApiClient.from_settings(settings),
            alert_notifier=AlertNotifier.from_settings(settings),
            dispatcher=CampaignDispatcher.from_settings(settings),
        )

    async def close(self):
        await self.partner.close()

    def _lock_for(self, game_id: str) -> asyncio.Lock:
        lock = self._game_locks.get(game_id)
        if lock is None:
            lock = self._game_locks[game_id] = asyncio.Lock()
        return lock

    def _orchestrator(self, db) -> SyncOrchestrator:
        return SyncOrchestrator(
            db,
            self.partner,
            self.alerts,
            self.settings,
            sleep=self._sleep,
            clock=self._clock,
        )

    # ========================================================================
    # Sync
    # ========================================================================

    async def _sync_game_id(self, game_id: str, sync_type: SyncType) -> SyncResult:
        """
        Sync one game on a fresh session.

        Raises:
            GameNotFoundError: Unknown or inactive game
            SyncInProgressError: The game is already being synced
            SyncFailedError: The run failed
        """
        lock = self._lock_for(game_id)
        if lock.locked():
            raise SyncInProgressError(game_id)

        async with lock:
            db = self.session_factory()
            try:
                game = GameRepository(db).find_by_id(game_id)
                if game is None or not game.is_active:
                    raise GameNotFoundError(game_id)

                if SyncLogRepository(db).is_running(game.id, self.settings.SYNC_RUN_TIMEOUT_SECONDS):
                    raise SyncInProgressError(game.game_key)

                with correlation_scope(_run_id(f"sync-{game.game_key}")):
                    return await self._orchestrator(db).sync_game(game, sync_type)
            finally:
                db.close()

    async def run_manual_sync(self, game_id: str) -> SyncResult:
        """
        Sync one game now.

        Raises:
            GameNotFoundError: Unknown or inactive game
            SyncInProgressError: The game is already being synced
            SyncFailedError: The run failed; message is the first fatal error
        """
        return await self._sync_game_id(game_id, SyncType.MANUAL)

    async def run_scheduled_sync(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Sync all games that are due.

        Returns:
            Aggregate summary; per-game failures are reported in it
        """
        started = self._clock()
        with correlation_scope(_run_id("scheduled-sync")):
            db = self.session_factory()
            try:
                due = [(game.id, game.game_key) for game in SyncScheduler(db, self.settings).games_due_for_sync(now)]
            finally:
                db.close()

            if not due:
                logger.info("No games due for sync")

            semaphore = asyncio.Semaphore(self.settings.SYNC_MAX_CONCURRENT_GAMES)

            async def run_one(game_id: str, game_key: str) -> Dict[str, Any]:
                async with semaphore:
                    try:
                        result = await self._sync_game_id(game_id, SyncType.SCHEDULED)
                    except SyncInProgressError as e:
                        logger.warning(f"Skipping {game_key}: {e}")
                        return {"game_key": game_key, "status": "skipped", "error": str(e)}
                    except SyncFailedError as e:
                        return {"game_key": game_key, "status": "failed", "phase": e.phase, "error": e.message}
                    except Exception as e:
                        logger.error(f"Unexpected error syncing {game_key}: {e}", exc_info=True)
                        return {"game_key": game_key, "status": "failed", "error": str(e)}
                    return {"game_key": game_key, "status": "completed", **result.to_dict()}

            results: List[Dict[str, Any]] = await asyncio.gather(*(run_one(gid, key) for gid, key in due))

        summary = {
            "games_due": len(due),
            "games_synced": sum(1 for r in results if r["status"] == "completed"),
            "games_failed": sum(1 for r in results if r["status"] == "failed"),
            "games_skipped": sum(1 for r in results if r["status"] == "skipped"),
            "elements_synced": sum(r.get("elements_synced", 0) for r in results),
            "users_synced": sum(r.get("users_synced", 0) for r in results),
            "duration_ms": int((self._clock() - started) * 1000),
            "results": results,
        }
        logger.info(
            f"Scheduled sync complete: {summary['games_synced']}/{summary['games_due']} synced, "
            f"{summary['games_failed']} failed, {summary['games_skipped']} skipped"
        )
        return summary

    # ========================================================================
    # Triggers and checks
    # ========================================================================

    async def run_trigger_pass(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Evaluate all campaign triggers. Never raises."""
        with correlation_scope(_run_id("triggers")):
            db = self.session_factory()
            try:
                evaluator = TriggerEvaluator(db, self.dispatcher, self.settings, alert_notifier=self.alerts)
                summary = await evaluator.process_all_triggers(now)
                return summary.to_dict()
            except Exception as e:
                logger.error(f"Trigger pass failed: {e}", exc_info=True)
                return {"games_processed": 0, "triggers_executed": 0, "triggers_skipped": 0, "errors": 1}
            finally:
                db.close()

    async def verify_partner_key(self) -> bool:
        return await self.partner.verify_key()
