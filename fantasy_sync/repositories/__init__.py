"""
Repository layer for data access.

Usage:
    from fantasy_sync.repositories import GameRepository, UserGameStatRepository

    db = session_factory()
    game = GameRepository(db).find_active_by_key("premier-league")
    stats = UserGameStatRepository(db).find_for_user("699590", game.id)
    db.close()
"""

from fantasy_sync.repositories.base import BaseRepository
from fantasy_sync.repositories.game_repository import GameRepository
from fantasy_sync.repositories.element_repository import ElementRepository
from fantasy_sync.repositories.user_stat_repository import UserGameStatRepository
from fantasy_sync.repositories.sync_log_repository import SyncLogRepository
from fantasy_sync.repositories.trigger_repository import GameTriggerRepository, TriggerLogRepository

__all__ = [
    "BaseRepository",
    "GameRepository",
    "ElementRepository",
    "UserGameStatRepository",
    "SyncLogRepository",
    "GameTriggerRepository",
    "TriggerLogRepository",
]
