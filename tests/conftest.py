"""Shared pytest fixtures for fantasy-sync tests."""
import math
import sys
from pathlib import Path
from datetime import datetime, timedelta
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fantasy_sync.core.config import Settings
from fantasy_sync.models import Base, Game, GameTrigger
from fantasy_sync.services.alert_service import AlertNotifier
from fantasy_sync.services.partner.client import PartnerApiClient
from fantasy_sync.services.sync.orchestrator import SyncOrchestrator
from fantasy_sync.utils.timezone import utcnow

PARTNER_BASE_URL = "https://partner.test/v1"


# =============================================================================
# SETTINGS AND DATABASE
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    """Test settings; never reads .env files."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL="sqlite:///:memory:",
        PARTNER_API_BASE_URL=PARTNER_BASE_URL,
        PARTNER_API_KEY="test-partner-key",
        GAME_BASE_URL="https://manager.example.se/se",
        SYNC_PAGE_DELAY_SECONDS=0.1,
        SCHEDULER_ENABLED=False,
        LOG_JSON=False,
    )


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory over an isolated in-memory database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


def create_game(db: Session, **overrides) -> Game:
    """Insert an active game with sensible defaults."""
    values = {
        "game_key": "premier-league",
        "name": "Premier League Manager",
        "sport_type": "FOOTBALL",
        "subsite_key": "aftonbladet",
        "sync_interval_minutes": 60,
        "current_round": 1,
        "is_active": True,
    }
    values.update(overrides)
    game = Game(**values)
    db.add(game)
    db.commit()
    return game


def create_trigger(db: Session, game: Game, trigger_type: str, **overrides) -> GameTrigger:
    values = {
        "game_id": game.id,
        "trigger_type": trigger_type,
        "campaign_id": f"campaign-{trigger_type}",
        "is_active": True,
    }
    values.update(overrides)
    trigger = GameTrigger(**values)
    db.add(trigger)
    db.commit()
    return trigger


@pytest.fixture
def game(db_session: Session) -> Game:
    return create_game(db_session)


# =============================================================================
# PARTNER API FAKE
# =============================================================================

def partner_round(index: int, state: str, start: Optional[datetime] = None,
                  trade_closes: Optional[datetime] = None, end: Optional[datetime] = None) -> Dict[str, Any]:
    def fmt(value):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ") if value else None

    return {
        "index": index,
        "state": state,
        "start": fmt(start),
        "tradeCloses": fmt(trade_closes),
        "end": fmt(end),
        "isVerified": 0,
    }


def partner_element(element_id: int, **overrides) -> Dict[str, Any]:
    element = {
        "elementId": element_id,
        "imageUrl": f"https://img.example/{element_id}.png",
        "url": f"https://example/players/{element_id}",
        "shortName": f"P{element_id}",
        "fullName": f"Player {element_id}",
        "teamName": "Team A",
        "popularity": 0.25,
        "trend": element_id % 7,
        "growth": 100,
        "totalGrowth": 500,
        "value": 5_000_000,
    }
    element.update(overrides)
    return element


def partner_user(user_id: int, external_id: Optional[str] = None, **team_overrides) -> Dict[str, Any]:
    team = {
        "id": user_id * 10,
        "name": f"Team {user_id}",
        "key": f"team-{user_id}",
        "score": 100 + user_id,
        "rank": user_id,
        "roundScore": 40,
        "roundRank": user_id,
        "roundJump": 2,
        "injured": 0,
        "suspended": 0,
        "lineupElementIds": [1, 2, 3],
    }
    team.update(team_overrides)
    return {
        "id": user_id,
        "name": f"User {user_id}",
        "key": f"user-{user_id}",
        "email": "",
        "externalId": external_id if external_id is not None else f"ext-{user_id}",
        "permissions": [],
        "injured": 1,
        "suspended": 0,
        "userteams": [team],
    }


class FakePartnerApi:
    """
    In-memory partner API served through httpx.MockTransport.

    Failures are queued per (endpoint, page): a queued status is returned
    instead of the real payload; `always=True` keeps failing forever.
    """

    def __init__(self, rounds=None, elements=None, users=None, current_round_index=1, game_id=4242):
        self.rounds = rounds if rounds is not None else [
            partner_round(1, "EndedLastest", end=utcnow() - timedelta(days=3)),
            partner_round(2, "CurrentOpen", start=utcnow() - timedelta(days=1),
                          trade_closes=utcnow() + timedelta(days=2), end=utcnow() + timedelta(days=5)),
            partner_round(3, "Pending", start=utcnow() + timedelta(days=6)),
        ]
        self.elements = elements if elements is not None else [partner_element(i) for i in range(1, 6)]
        self.users = users if users is not None else [partner_user(i) for i in range(1, 26)]
        self.current_round_index = current_round_index
        self.game_id = game_id
        self.api_key_message = "Ok: Valid API Key"
        self.failures: Dict[tuple, List[int]] = {}
        self.always_fail: Dict[tuple, int] = {}
        self.requests: List[httpx.Request] = []

    def fail(self, endpoint: str, status: int, page: Optional[int] = None, times: int = 1, always: bool = False):
        key = (endpoint, page)
        if always:
            self.always_fail[key] = status
        else:
            self.failures.setdefault(key, []).extend([status] * times)

    def requests_for(self, endpoint: str, page: Optional[int] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if self._endpoint(r) == endpoint and (page is None or int(r.url.params.get("page", 0)) == page)
        ]

    @staticmethod
    def _endpoint(request: httpx.Request) -> str:
        path = request.url.path
        if path.endswith("/apikeycheck"):
            return "apikeycheck"
        if path.endswith("/elements"):
            return "elements"
        if path.endswith("/users"):
            return "users"
        return "game"

    def _queued_failure(self, endpoint: str, page: Optional[int]) -> Optional[int]:
        key = (endpoint, page)
        if key in self.always_fail:
            return self.always_fail[key]
        queue = self.failures.get(key)
        if queue:
            return queue.pop(0)
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = self._endpoint(request)
        page = int(request.url.params["page"]) if endpoint == "users" else None

        status = self._queued_failure(endpoint, page)
        if status is not None:
            return httpx.Response(status, json={"message": "error"})

        if endpoint == "apikeycheck":
            return httpx.Response(200, json={"message": self.api_key_message})
        if endpoint == "elements":
            return httpx.Response(200, json=self.elements)
        if endpoint == "users":
            page_size = int(request.url.params["pageSize"])
            pages = math.ceil(len(self.users) / page_size)
            start = (page - 1) * page_size
            return httpx.Response(200, json={
                "page": page,
                "pages": pages,
                "pageSize": page_size,
                "pageSizeMax": 10,
                "usersTotal": len(self.users),
                "gameUrl": "https://manager.example.se/se/premier-league",
                "users": self.users[start:start + page_size],
            })
        return httpx.Response(200, json={
            "gameId": self.game_id,
            "tournamentId": 1,
            "gameKey": "premier-league",
            "userteamsCount": len(self.users),
            "competitionsCount": 0,
            "currentRoundIndex": self.current_round_index,
            "rounds": self.rounds,
            "competitions": [],
        })

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def partner_api() -> FakePartnerApi:
    return FakePartnerApi()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def partner_client(settings, partner_api, recording_sleep) -> PartnerApiClient:
    return PartnerApiClient.from_settings(
        settings, transport=partner_api.transport(), sleep=recording_sleep
    )


@pytest.fixture
def alerts() -> AsyncMock:
    return AsyncMock(spec=AlertNotifier)


@pytest.fixture
def orchestrator(db_session, partner_client, alerts, settings, recording_sleep) -> SyncOrchestrator:
    return SyncOrchestrator(db_session, partner_client, alerts, settings, sleep=recording_sleep)
