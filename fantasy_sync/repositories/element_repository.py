"""
Element Repository for game catalog data access.

Elements are replaced on every sync through keyed upserts on
(game_id, element_id); rows are never patched field by field elsewhere.
"""
from typing import Any, Dict, List, Sequence

from fantasy_sync.models import Element
from fantasy_sync.repositories.base import BaseRepository


class ElementRepository(BaseRepository[Element]):
    """Repository for element (player) data access."""

    def __init__(self, db):
        super().__init__(Element, db)

    def upsert_batch(self, game_id: str, items: List[Dict[str, Any]]) -> int:
        """
        Upsert one batch of elements for a game and commit it.

        Raises:
            SQLAlchemyError: The batch could not be written (caller rolls back)
        """
        self.upsert_by_key([Element.game_id == game_id], "element_id", items)
        self.save()
        return len(items)

    def find_for_game(self, game_id: str) -> List[Element]:
        return self.query().filter(Element.game_id == game_id).order_by(Element.element_id).all()

    def find_by_element_ids(self, game_id: str, element_ids: Sequence[int]) -> List[Element]:
        """Lineup lookup; returned in the order of element_ids."""
        if not element_ids:
            return []
        rows = self.where(Element.game_id == game_id, Element.element_id.in_(list(element_ids)))
        by_id = {row.element_id: row for row in rows}
        return [by_id[element_id] for element_id in element_ids if element_id in by_id]

    def find_trending(self, game_id: str, limit: int = 5, rising: bool = True) -> List[Element]:
        """Top (or bottom) elements of a game by trend."""
        order = Element.trend.desc() if rising else Element.trend.asc()
        return (
            self.query()
            .filter(Element.game_id == game_id)
            .order_by(order, Element.element_id)
            .limit(limit)
            .all()
        )
