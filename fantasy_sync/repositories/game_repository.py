"""
Game Repository for fantasy game data access.

Usage:
    repo = GameRepository(db)
    game = repo.find_active_by_key("premier-league")
    active = repo.find_active()
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fantasy_sync.models import Game
from fantasy_sync.repositories.base import BaseRepository


class GameRepository(BaseRepository[Game]):
    """Repository for game data access."""

    def __init__(self, db):
        super().__init__(Game, db)

    def find_active(self) -> List[Game]:
        """All games that are not soft-deleted."""
        return self.query().filter(Game.is_active.is_(True)).order_by(Game.game_key).all()

    def find_by_game_key(self, game_key: str) -> Optional[Game]:
        return self.where_first(Game.game_key == game_key)

    def find_active_by_key(self, game_key: str) -> Optional[Game]:
        """Read accessor used by the public read layer."""
        return self.where_first(Game.game_key == game_key, Game.is_active.is_(True))

    def update_sync_state(self, game: Game, fields: Dict[str, Any], synced_at: datetime) -> Game:
        """
        Apply the state derived from the partner API and stamp last_synced_at.

        Commits immediately; the metadata phase is its own durability point.
        """
        for name, value in fields.items():
            setattr(game, name, value)
        game.last_synced_at = synced_at
        self.save()
        return game
