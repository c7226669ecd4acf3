"""Game reconciliation: orchestrator, due-game scheduler and job runner."""
from fantasy_sync.services.sync.orchestrator import SyncOrchestrator, SyncResult, derive_game_state
from fantasy_sync.services.sync.runner import SyncJobRunner
from fantasy_sync.services.sync.scheduler import SyncScheduler

__all__ = [
    "SyncOrchestrator",
    "SyncResult",
    "derive_game_state",
    "SyncJobRunner",
    "SyncScheduler",
]
