"""Campaign trigger evaluation and dispatch."""
from fantasy_sync.services.triggers.campaign_dispatcher import CampaignDispatcher, DispatchResult
from fantasy_sync.services.triggers.evaluator import (
    CheckResult,
    TriggerEvaluator,
    TriggerOutcome,
    TriggerRunSummary,
)

__all__ = [
    "CampaignDispatcher",
    "DispatchResult",
    "CheckResult",
    "TriggerEvaluator",
    "TriggerOutcome",
    "TriggerRunSummary",
]
