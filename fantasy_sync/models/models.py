"""
Database models for the fantasy game sync service.

Six record types:
- Game: configured fantasy game plus the round state pulled from the partner
- Element: catalog item (player) of a game, replaced on every sync
- UserGameStat: one row per (external user, game), upserted page by page
- SyncLog: append-only audit of one sync run
- GameTrigger: campaign trigger config and its idempotency watermark
- TriggerLog: append-only audit of one trigger evaluation

All datetimes are naive UTC.
"""
import enum
import uuid

from sqlalchemy import (
    Column, String, Float, Integer, DateTime, ForeignKey, Boolean, Text, JSON,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship, declarative_base

from fantasy_sync.utils.timezone import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class SportType(str, enum.Enum):
    FOOTBALL = "FOOTBALL"
    HOCKEY = "HOCKEY"
    F1 = "F1"
    OTHER = "OTHER"


class RoundState(str, enum.Enum):
    """Round lifecycle as reported by the partner API."""
    PENDING = "Pending"
    CURRENT_OPEN = "CurrentOpen"
    ENDED = "Ended"
    ENDED_LATEST = "EndedLatest"

    @classmethod
    def ended_states(cls) -> set[str]:
        return {cls.ENDED.value, cls.ENDED_LATEST.value}


class SyncType(str, enum.Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class SyncStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerType(str, enum.Enum):
    DEADLINE_REMINDER_24H = "deadline_reminder_24h"
    ROUND_STARTED = "round_started"
    ROUND_ENDED = "round_ended"


class TriggerStatus(str, enum.Enum):
    TRIGGERED = "triggered"
    FAILED = "failed"
    SKIPPED = "skipped"


class Game(Base):
    """Fantasy game configuration and its partner-side round state."""
    __tablename__ = "games"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_key = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    sport_type = Column(String(16), nullable=False, default=SportType.OTHER.value)
    subsite_key = Column(String(100), nullable=False, default="aftonbladet")
    partner_game_id = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Sync cadence (minutes between routine syncs)
    sync_interval_minutes = Column(Integer, nullable=False, default=60)

    # Round state, written by the sync orchestrator only
    current_round = Column(Integer, nullable=True, default=1)
    total_rounds = Column(Integer, nullable=True)
    round_state = Column(String(16), nullable=True)
    current_round_start = Column(DateTime, nullable=True)
    current_round_end = Column(DateTime, nullable=True)
    next_trade_deadline = Column(DateTime, nullable=True)
    users_total = Column(Integer, nullable=False, default=0)
    game_url = Column(String(500), nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    elements = relationship("Element", back_populates="game", cascade="all, delete-orphan")
    user_stats = relationship("UserGameStat", back_populates="game", cascade="all, delete-orphan")
    triggers = relationship("GameTrigger", back_populates="game", cascade="all, delete-orphan")
    sync_logs = relationship("SyncLog", back_populates="game", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Game {self.game_key} round={self.current_round} state={self.round_state}>"


class Element(Base):
    """Catalog item (player) of a game."""
    __tablename__ = "elements"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    element_id = Column(Integer, nullable=False, index=True)  # partner element id
    short_name = Column(String(100), nullable=False)
    full_name = Column(String(255), nullable=False)
    team_name = Column(String(100), nullable=True)
    image_url = Column(String(500), nullable=True)
    popularity = Column(Float, nullable=False, default=0.0)
    trend = Column(Integer, nullable=False, default=0, index=True)
    growth = Column(Integer, nullable=False, default=0)
    total_growth = Column(Integer, nullable=False, default=0)
    value = Column(Integer, nullable=False, default=0)
    is_injured = Column(Boolean, nullable=False, default=False)
    is_suspended = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    game = relationship("Game", back_populates="elements")

    __table_args__ = (
        UniqueConstraint('game_id', 'element_id', name='uq_elements_game_element'),
    )


class UserGameStat(Base):
    """Per-user standings in one game. Holds no PII beyond the external id."""
    __tablename__ = "user_game_stats"

    id = Column(String(36), primary_key=True, default=_uuid)
    external_id = Column(String(255), nullable=False, index=True)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    partner_user_id = Column(Integer, nullable=False)
    team_name = Column(String(255), nullable=True)
    score = Column(Integer, nullable=False, default=0)
    rank = Column(Integer, nullable=True)
    round_score = Column(Integer, nullable=False, default=0)
    round_rank = Column(Integer, nullable=True)
    round_jump = Column(Integer, nullable=False, default=0)
    injured_count = Column(Integer, nullable=False, default=0)
    suspended_count = Column(Integer, nullable=False, default=0)
    lineup_element_ids = Column(JSON, nullable=False, default=list)  # ordered element ids
    synced_at = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    game = relationship("Game", back_populates="user_stats")

    __table_args__ = (
        UniqueConstraint('external_id', 'game_id', name='uq_user_game_stats_user_game'),
        Index('ix_user_game_stats_lookup', 'external_id', 'game_id'),
    )


class SyncLog(Base):
    """Audit record of one sync run: created 'started', finalized once."""
    __tablename__ = "sync_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    sync_type = Column(String(16), nullable=False, default=SyncType.MANUAL.value)
    status = Column(String(16), nullable=False, default=SyncStatus.STARTED.value, index=True)
    users_synced = Column(Integer, nullable=False, default=0)
    elements_synced = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)

    game = relationship("Game", back_populates="sync_logs")


class GameTrigger(Base):
    """Campaign trigger for one (game, trigger type)."""
    __tablename__ = "game_triggers"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    trigger_type = Column(String(32), nullable=False)
    campaign_id = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    # Idempotency watermark: last round index this trigger fired for
    last_triggered_round = Column(Integer, nullable=True)
    last_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    game = relationship("Game", back_populates="triggers")

    __table_args__ = (
        UniqueConstraint('game_id', 'trigger_type', name='uq_game_triggers_game_type'),
    )


class TriggerLog(Base):
    """Append-only audit of one trigger evaluation outcome."""
    __tablename__ = "trigger_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    trigger_id = Column(String(36), ForeignKey("game_triggers.id", ondelete="CASCADE"), nullable=False, index=True)
    trigger_type = Column(String(32), nullable=False)
    round_index = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False)
    campaign_response = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)  # why the trigger fired or was skipped
    error_message = Column(Text, nullable=True)
    triggered_at = Column(DateTime, nullable=False, default=utcnow, index=True)
