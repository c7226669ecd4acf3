"""Sync API routes.

Provides endpoints for:
- Running the scheduled sync pass (for external cron)
- Manually syncing one game
- Reviewing recent sync logs
- Checking the partner API key
- Scheduler status
"""
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from fantasy_sync.core.database import get_db
from fantasy_sync.core.exceptions import (
    GameNotFoundError,
    SyncFailedError,
    SyncInProgressError,
    TransientError,
)
from fantasy_sync.core.logging import get_logger
from fantasy_sync.repositories import SyncLogRepository
from fantasy_sync.services.sync.runner import SyncJobRunner
from fantasy_sync.utils.timezone import isoformat_utc

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


def get_runner(request: Request) -> SyncJobRunner:
    """Dependency to get the job runner built at startup."""
    return request.app.state.runner


@router.post("/run")
async def run_scheduled_sync(runner: SyncJobRunner = Depends(get_runner)) -> Dict:
    """
    Sync every game that is due now.

    Per-game failures are part of the summary; this endpoint does not fail
    because a game did.
    """
    return await runner.run_scheduled_sync()


@router.post("/games/{game_id}")
async def sync_game(game_id: str, runner: SyncJobRunner = Depends(get_runner)) -> Dict:
    """
    Sync one game now.

    Returns:
        Counts of the run

    Raises:
        404: Unknown game
        409: The game is already being synced
        502: The sync failed; detail carries the error verbatim
    """
    try:
        result = await runner.run_manual_sync(game_id)
    except GameNotFoundError:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SyncFailedError as e:
        raise HTTPException(
            status_code=502,
            detail={
                "error": e.message,
                "phase": e.phase,
                "result": e.result.to_dict() if e.result else None,
            },
        )

    return {"success": True, **result.to_dict()}


@router.get("/logs")
async def get_sync_logs(
    game_id: Optional[str] = Query(None, description="Filter by game"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[Dict]:
    """Most recent sync runs, newest first."""
    logs = SyncLogRepository(db).recent(game_id=game_id, limit=limit)
    return [
        {
            "id": log.id,
            "game_id": log.game_id,
            "sync_type": log.sync_type,
            "status": log.status,
            "users_synced": log.users_synced,
            "elements_synced": log.elements_synced,
            "error_message": log.error_message,
            "started_at": isoformat_utc(log.started_at),
            "completed_at": isoformat_utc(log.completed_at),
        }
        for log in logs
    ]


@router.post("/partner/verify")
async def verify_partner_key(runner: SyncJobRunner = Depends(get_runner)) -> Dict:
    """Check the configured partner API key."""
    try:
        valid = await runner.verify_partner_key()
    except TransientError as e:
        raise HTTPException(status_code=503, detail=f"Partner API unavailable: {e.message}")
    return {"valid": valid}


@router.get("/scheduler/status")
async def get_scheduler_status(request: Request) -> Dict:
    """Status of the in-process scheduler and its jobs."""
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None or not scheduler.running:
        return {"running": False, "jobs": []}

    return {
        "running": True,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.scheduler.get_jobs()
        ],
    }
