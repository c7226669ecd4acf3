"""
UserGameStat Repository.

One row per (external_id, game_id). Each users page of a sync is written
and committed on its own, so a run interrupted halfway keeps every page it
already finished.
"""
from typing import Any, Dict, List, Optional

from fantasy_sync.models import UserGameStat
from fantasy_sync.repositories.base import BaseRepository


class UserGameStatRepository(BaseRepository[UserGameStat]):
    """Repository for per-user game standings."""

    def __init__(self, db):
        super().__init__(UserGameStat, db)

    def upsert_page(self, game_id: str, items: List[Dict[str, Any]]) -> int:
        """
        Upsert one page of users and commit it.

        Raises:
            SQLAlchemyError: The page could not be written (caller rolls back)
        """
        self.upsert_by_key([UserGameStat.game_id == game_id], "external_id", items)
        self.save()
        return len(items)

    def find_for_user(self, external_id: str, game_id: str) -> Optional[UserGameStat]:
        """Read accessor used by the public read layer."""
        return self.where_first(
            UserGameStat.external_id == external_id,
            UserGameStat.game_id == game_id,
        )

    def count_for_game(self, game_id: str) -> int:
        return self.count(UserGameStat.game_id == game_id)
