"""
Trigger repositories: trigger configuration (with its watermark) and the
append-only trigger log.
"""
from typing import Any, Dict, List, Optional

from fantasy_sync.models import GameTrigger, TriggerLog
from fantasy_sync.repositories.base import BaseRepository
from fantasy_sync.utils.timezone import utcnow


class GameTriggerRepository(BaseRepository[GameTrigger]):
    """Repository for campaign trigger configuration."""

    def __init__(self, db):
        super().__init__(GameTrigger, db)

    def find_active_for_game(self, game_id: str) -> List[GameTrigger]:
        return (
            self.query()
            .filter(GameTrigger.game_id == game_id, GameTrigger.is_active.is_(True))
            .order_by(GameTrigger.trigger_type)
            .all()
        )

    def advance_watermark(self, trigger: GameTrigger, round_index: int) -> GameTrigger:
        """Mark the trigger as fired for round_index. The caller commits."""
        trigger.last_triggered_round = round_index
        trigger.last_triggered_at = utcnow()
        return trigger


class TriggerLogRepository(BaseRepository[TriggerLog]):
    """Repository for trigger evaluation audit records."""

    def __init__(self, db):
        super().__init__(TriggerLog, db)

    def append(
        self,
        trigger: GameTrigger,
        round_index: int,
        status: str,
        campaign_response: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> TriggerLog:
        """Stage a log entry; committed together with any watermark change."""
        entry = self.create(
            game_id=trigger.game_id,
            trigger_id=trigger.id,
            trigger_type=trigger.trigger_type,
            round_index=round_index,
            status=status,
            campaign_response=campaign_response,
            error_message=error_message,
            reason=reason,
            triggered_at=utcnow(),
        )
        return entry

    def for_trigger(self, trigger_id: str) -> List[TriggerLog]:
        return (
            self.query()
            .filter(TriggerLog.trigger_id == trigger_id)
            .order_by(TriggerLog.triggered_at)
            .all()
        )
