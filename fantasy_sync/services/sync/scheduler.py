"""
Due-game selection for scheduled syncs.

A game is due when:
- it was never synced, or
- it is in a critical period and CRITICAL_SYNC_INTERVAL_MINUTES have passed, or
- its own sync_interval_minutes have passed.

Critical periods (any of):
- the round starts within CRITICAL_PRE_ROUND_HOURS
- the trade deadline is within CRITICAL_DEADLINE_HOURS
- the round ended within the last CRITICAL_POST_ROUND_HOURS
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from fantasy_sync.core.config import Settings
from fantasy_sync.core.logging import get_logger
from fantasy_sync.models import Game
from fantasy_sync.repositories import GameRepository
from fantasy_sync.utils.timezone import hours_between, utcnow

logger = get_logger(__name__)


class SyncScheduler:
    """Decides which active games need a sync now. Reads the store only."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.games = GameRepository(db)

    def critical_period_reason(self, game: Game, now: datetime) -> Optional[str]:
        """
        Why the game is in a critical period, or None.

        Examples:
            "Round starts in 1.5h", "Trade deadline in 0.8h", "Round ended 0.3h ago"
        """
        if game.current_round_start:
            hours_until_start = hours_between(now, game.current_round_start)
            if 0 < hours_until_start <= self.settings.CRITICAL_PRE_ROUND_HOURS:
                return f"Round starts in {hours_until_start:.1f}h"

        if game.next_trade_deadline:
            hours_until_deadline = hours_between(now, game.next_trade_deadline)
            if 0 < hours_until_deadline <= self.settings.CRITICAL_DEADLINE_HOURS:
                return f"Trade deadline in {hours_until_deadline:.1f}h"

        if game.current_round_end:
            hours_since_end = hours_between(game.current_round_end, now)
            if 0 <= hours_since_end <= self.settings.CRITICAL_POST_ROUND_HOURS:
                return f"Round ended {hours_since_end:.1f}h ago"

        return None

    def is_due(self, game: Game, now: datetime) -> bool:
        if game.last_synced_at is None:
            logger.info(f"{game.game_key} due: never synced")
            return True

        minutes_since_sync = (now - game.last_synced_at).total_seconds() / 60

        reason = self.critical_period_reason(game, now)
        if reason:
            due = minutes_since_sync >= self.settings.CRITICAL_SYNC_INTERVAL_MINUTES
            if due:
                logger.info(
                    f"{game.game_key} due (critical: {reason}), "
                    f"last sync {minutes_since_sync:.0f} min ago"
                )
            return due

        return minutes_since_sync >= game.sync_interval_minutes

    def games_due_for_sync(self, now: Optional[datetime] = None) -> List[Game]:
        """Active games due for a sync at `now` (naive UTC)."""
        now = now or utcnow()
        due = [game for game in self.games.find_active() if self.is_due(game, now)]
        logger.info(f"{len(due)} games due for sync")
        return due
