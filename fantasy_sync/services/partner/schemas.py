"""
Payload models for the partner game API.

The partner sends camelCase JSON; models accept it through aliases and
ignore fields we do not store. Timestamps stay as strings here and are
normalized to naive UTC by the orchestrator.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from fantasy_sync.models import RoundState


class PartnerModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def null_to_default(cls, value, info: ValidationInfo):
        # Upstream sends null for counters, names and lists it has nothing for
        field = cls.model_fields[info.field_name]
        if value is None and not field.is_required():
            return field.get_default(call_default_factory=True)
        return value


class PartnerRound(PartnerModel):
    index: int
    start: Optional[str] = None
    trade_closes: Optional[str] = Field(default=None, alias="tradeCloses")
    end: Optional[str] = None
    state: str

    @field_validator("state")
    @classmethod
    def normalize_state(cls, value: str) -> str:
        # Upstream spells the latest ended round "EndedLastest"
        if value == "EndedLastest":
            return RoundState.ENDED_LATEST.value
        return value


class PartnerGameMeta(PartnerModel):
    game_id: int = Field(alias="gameId")
    game_key: Optional[str] = Field(default=None, alias="gameKey")
    userteams_count: int = Field(default=0, alias="userteamsCount")
    current_round_index: Optional[int] = Field(default=None, alias="currentRoundIndex")
    rounds: List[PartnerRound] = Field(default_factory=list)


class PartnerElement(PartnerModel):
    element_id: int = Field(alias="elementId")
    short_name: str = Field(default="", alias="shortName")
    full_name: str = Field(default="", alias="fullName")
    team_name: Optional[str] = Field(default=None, alias="teamName")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    popularity: float = 0.0
    trend: int = 0
    growth: int = 0
    total_growth: int = Field(default=0, alias="totalGrowth")
    value: int = 0
    is_injured: bool = Field(default=False, alias="isInjured")
    is_suspended: bool = Field(default=False, alias="isSuspended")


class PartnerUserteam(PartnerModel):
    id: int
    name: Optional[str] = None
    score: int = 0
    rank: Optional[int] = None
    round_score: int = Field(default=0, alias="roundScore")
    round_rank: Optional[int] = Field(default=None, alias="roundRank")
    round_jump: int = Field(default=0, alias="roundJump")
    lineup_element_ids: List[int] = Field(default_factory=list, alias="lineupElementIds")


class PartnerUser(PartnerModel):
    id: int
    name: Optional[str] = None
    external_id: Optional[str] = Field(default=None, alias="externalId")
    injured: int = 0
    suspended: int = 0
    userteams: List[PartnerUserteam] = Field(default_factory=list)

    @field_validator("external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, value):
        if value is None or value == "":
            return None
        return str(value)

    @property
    def primary_team(self) -> Optional[PartnerUserteam]:
        return self.userteams[0] if self.userteams else None


class PartnerUsersPage(PartnerModel):
    page: int = 1
    pages: int = 0
    page_size: int = Field(default=0, alias="pageSize")
    users_total: int = Field(default=0, alias="usersTotal")
    game_url: Optional[str] = Field(default=None, alias="gameUrl")
    users: List[PartnerUser] = Field(default_factory=list)
