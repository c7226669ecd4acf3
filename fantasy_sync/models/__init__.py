"""
Models Module

Usage:
    from fantasy_sync.models import Game, Element, UserGameStat
"""
from fantasy_sync.models.models import (
    Base,
    Game,
    Element,
    UserGameStat,
    SyncLog,
    GameTrigger,
    TriggerLog,
    SportType,
    RoundState,
    SyncType,
    SyncStatus,
    TriggerType,
    TriggerStatus,
)

__all__ = [
    "Base",
    "Game",
    "Element",
    "UserGameStat",
    "SyncLog",
    "GameTrigger",
    "TriggerLog",
    "SportType",
    "RoundState",
    "SyncType",
    "SyncStatus",
    "TriggerType",
    "TriggerStatus",
]
