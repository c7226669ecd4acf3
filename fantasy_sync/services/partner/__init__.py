"""Partner game API client and payload models."""
from fantasy_sync.services.partner.client import PartnerApiClient
from fantasy_sync.services.partner.schemas import (
    PartnerElement,
    PartnerGameMeta,
    PartnerRound,
    PartnerUser,
    PartnerUsersPage,
    PartnerUserteam,
)

__all__ = [
    "PartnerApiClient",
    "PartnerElement",
    "PartnerGameMeta",
    "PartnerRound",
    "PartnerUser",
    "PartnerUsersPage",
    "PartnerUserteam",
]
