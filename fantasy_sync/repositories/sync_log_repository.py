"""
SyncLog Repository.

A sync log row is created in the 'started' state when a run begins and
finalized exactly once as 'completed' or 'failed'.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from fantasy_sync.models import SyncLog, SyncStatus
from fantasy_sync.repositories.base import BaseRepository
from fantasy_sync.utils.timezone import utcnow


class SyncLogRepository(BaseRepository[SyncLog]):
    """Repository for sync run audit records."""

    def __init__(self, db):
        super().__init__(SyncLog, db)

    def start(self, game_id: str, sync_type: str) -> SyncLog:
        log = self.create(
            game_id=game_id,
            sync_type=sync_type,
            status=SyncStatus.STARTED.value,
            users_synced=0,
            elements_synced=0,
            started_at=utcnow(),
        )
        self.save()
        return log

    def finalize(
        self,
        log: SyncLog,
        status: SyncStatus,
        users_synced: int = 0,
        elements_synced: int = 0,
        error_message: Optional[str] = None,
    ) -> SyncLog:
        """
        Close a started log.

        Raises:
            ValueError: The log was already finalized
        """
        if log.status != SyncStatus.STARTED.value:
            raise ValueError(f"Sync log {log.id} already finalized as {log.status}")

        log.status = status.value
        log.users_synced = users_synced
        log.elements_synced = elements_synced
        log.error_message = error_message
        log.completed_at = utcnow()
        self.save()
        return log

    def find_running(self, game_id: str, started_after: datetime) -> Optional[SyncLog]:
        """A run of this game still in progress (started recently, not finalized)."""
        return self.where_first(
            SyncLog.game_id == game_id,
            SyncLog.status == SyncStatus.STARTED.value,
            SyncLog.started_at >= started_after,
        )

    def is_running(self, game_id: str, budget_seconds: int, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.find_running(game_id, now - timedelta(seconds=budget_seconds)) is not None

    def last_finalized(self, game_id: str) -> Optional[SyncLog]:
        """Most recent completed or failed run of a game."""
        query = self.query().filter(
            SyncLog.game_id == game_id,
            SyncLog.status != SyncStatus.STARTED.value,
        )
        return query.order_by(SyncLog.started_at.desc()).first()

    def recent(self, game_id: Optional[str] = None, limit: int = 50) -> List[SyncLog]:
        query = self.query()
        if game_id:
            query = query.filter(SyncLog.game_id == game_id)
        return query.order_by(SyncLog.started_at.desc()).limit(limit).all()
