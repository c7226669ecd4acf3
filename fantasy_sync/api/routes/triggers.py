"""Campaign trigger routes."""
from typing import Dict

from fastapi import APIRouter, Depends

from fantasy_sync.api.routes.sync import get_runner
from fantasy_sync.services.sync.runner import SyncJobRunner

router = APIRouter(prefix="/triggers", tags=["triggers"])


@router.post("/run")
async def run_triggers(runner: SyncJobRunner = Depends(get_runner)) -> Dict:
    """Evaluate every active campaign trigger now."""
    return await runner.run_trigger_pass()
