"""
Campaign trigger evaluation.

Each (game, trigger type) fires at most once per round. The only state is
GameTrigger.last_triggered_round, advanced after a successful dispatch:

    deadline_reminder_24h  deadline set, whole hours until it in [20, 28]
    round_started          round_state == CurrentOpen
    round_ended            round_state in (Ended, EndedLatest)

and, for all three, last_triggered_round != current_round.

Every evaluation appends a TriggerLog row: 'skipped' (condition false or
campaign integration unconfigured), 'triggered' or 'failed'. A failed
dispatch leaves the watermark alone so the next pass retries it.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from fantasy_sync.core.config import Settings
from fantasy_sync.core.exceptions import CampaignDispatchError
from fantasy_sync.core.logging import get_logger
from fantasy_sync.core.metrics import trigger_evaluations_total
from fantasy_sync.models import Game, GameTrigger, RoundState, TriggerStatus, TriggerType
from fantasy_sync.repositories import GameRepository, GameTriggerRepository, TriggerLogRepository
from fantasy_sync.services.alert_service import AlertNotifier
from fantasy_sync.services.triggers.campaign_dispatcher import CampaignDispatcher
from fantasy_sync.utils.timezone import isoformat_utc, utcnow, whole_hours_between

logger = get_logger(__name__)


@dataclass
class CheckResult:
    should_trigger: bool
    reason: str


@dataclass
class TriggerOutcome:
    """Result of processing one trigger."""
    trigger_type: str
    status: TriggerStatus
    message: str
    round_index: int
    response: Optional[Dict[str, Any]] = None

    @property
    def dispatched(self) -> bool:
        return self.status == TriggerStatus.TRIGGERED


@dataclass
class TriggerRunSummary:
    games_processed: int = 0
    triggers_executed: int = 0
    triggers_skipped: int = 0
    errors: int = 0
    outcomes: List[TriggerOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("outcomes")
        return data


class TriggerEvaluator:
    """Evaluates and fires campaign triggers for active games."""

    def __init__(
        self,
        db: Session,
        dispatcher: CampaignDispatcher,
        settings: Settings,
        alert_notifier: Optional[AlertNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.settings = settings
        self.alerts = alert_notifier
        self._clock = clock

        self.games = GameRepository(db)
        self.triggers = GameTriggerRepository(db)
        self.trigger_logs = TriggerLogRepository(db)

    # ========================================================================
    # Conditions
    # ========================================================================

    def _check_deadline_reminder(self, game: Game, trigger: GameTrigger, now: datetime) -> CheckResult:
        if not game.next_trade_deadline:
            return CheckResult(False, "No trade deadline set")

        hours = whole_hours_between(now, game.next_trade_deadline)
        low = self.settings.DEADLINE_REMINDER_MIN_HOURS
        high = self.settings.DEADLINE_REMINDER_MAX_HOURS
        if hours < low or hours > high:
            return CheckResult(False, f"Deadline is {hours}h away (need {low}-{high}h)")

        if trigger.last_triggered_round == game.current_round:
            return CheckResult(False, f"Already triggered for round {game.current_round}")

        return CheckResult(True, f"Deadline is {hours}h away")

    @staticmethod
    def _check_round_started(game: Game, trigger: GameTrigger) -> CheckResult:
        if game.round_state != RoundState.CURRENT_OPEN.value:
            return CheckResult(False, f"Round state is {game.round_state}, not CurrentOpen")

        if trigger.last_triggered_round == game.current_round:
            return CheckResult(False, f"Already triggered for round {game.current_round}")

        return CheckResult(True, "Round is now open")

    @staticmethod
    def _check_round_ended(game: Game, trigger: GameTrigger) -> CheckResult:
        if game.round_state not in RoundState.ended_states():
            return CheckResult(False, f"Round state is {game.round_state}, not Ended")

        if trigger.last_triggered_round == game.current_round:
            return CheckResult(False, f"Already triggered for round {game.current_round}")

        return CheckResult(True, "Round has ended")

    def check_trigger(self, game: Game, trigger: GameTrigger, now: Optional[datetime] = None) -> CheckResult:
        """Decide whether a trigger should fire for the game's current round."""
        now = now or self._clock()
        if trigger.trigger_type == TriggerType.DEADLINE_REMINDER_24H.value:
            return self._check_deadline_reminder(game, trigger, now)
        if trigger.trigger_type == TriggerType.ROUND_STARTED.value:
            return self._check_round_started(game, trigger)
        if trigger.trigger_type == TriggerType.ROUND_ENDED.value:
            return self._check_round_ended(game, trigger)
        return CheckResult(False, f"Unknown trigger type: {trigger.trigger_type}")

    # ========================================================================
    # Processing
    # ========================================================================

    @staticmethod
    def trigger_properties(game: Game, trigger: GameTrigger) -> Dict[str, Any]:
        return {
            "game_key": game.game_key,
            "game_name": game.name,
            "current_round": game.current_round,
            "total_rounds": game.total_rounds,
            "trade_deadline": isoformat_utc(game.next_trade_deadline),
            "trigger_type": trigger.trigger_type,
        }

    def _record(
        self, trigger: GameTrigger, outcome: TriggerOutcome, advance_watermark: bool = False, **log_fields
    ) -> TriggerOutcome:
        self.trigger_logs.append(trigger, outcome.round_index, outcome.status.value, **log_fields)
        if advance_watermark:
            self.triggers.advance_watermark(trigger, outcome.round_index)
        # Log entry and watermark commit together or not at all
        self.trigger_logs.save()
        trigger_evaluations_total.labels(
            trigger_type=trigger.trigger_type, status=outcome.status.value
        ).inc()
        return outcome

    async def process_trigger(self, game: Game, trigger: GameTrigger, now: Optional[datetime] = None) -> TriggerOutcome:
        """Evaluate one trigger and dispatch its campaign when it should fire."""
        round_index = game.current_round or 1
        trigger_type = trigger.trigger_type
        check = self.check_trigger(game, trigger, now)

        if not check.should_trigger:
            logger.info(f"Skipping {trigger_type} for {game.game_key}: {check.reason}")
            outcome = TriggerOutcome(trigger_type, TriggerStatus.SKIPPED, check.reason, round_index)
            return self._record(trigger, outcome, reason=check.reason)

        logger.info(f"Triggering {trigger_type} campaign for {game.game_key}: {check.reason}")
        try:
            result = await self.dispatcher.dispatch(trigger.campaign_id, self.trigger_properties(game, trigger))
        except CampaignDispatchError as e:
            logger.error(f"Failed to trigger {trigger_type} for {game.game_key}: {e.message}")
            outcome = TriggerOutcome(
                trigger_type, TriggerStatus.FAILED, f"Failed to trigger: {e.message}", round_index, e.response
            )
            self._record(
                trigger, outcome,
                campaign_response=e.response, error_message=e.message, reason=check.reason,
            )
            if self.alerts is not None:
                await self.alerts.notify_trigger_failure(game.game_key, trigger_type, round_index, e.message)
            return outcome

        if result.skipped:
            message = "Campaign integration not configured"
            outcome = TriggerOutcome(trigger_type, TriggerStatus.SKIPPED, message, round_index, result.response)
            return self._record(trigger, outcome, campaign_response=result.response, reason=message)

        outcome = TriggerOutcome(
            trigger_type, TriggerStatus.TRIGGERED, f"Campaign triggered for {trigger_type}",
            round_index, result.response,
        )
        return self._record(
            trigger, outcome, advance_watermark=True, campaign_response=result.response, reason=check.reason
        )

    async def process_game_triggers(self, game: Game, now: Optional[datetime] = None) -> List[TriggerOutcome]:
        """Process every active trigger of a game. One trigger's failure never stops the others."""
        outcomes = []
        for trigger in self.triggers.find_active_for_game(game.id):
            try:
                outcomes.append(await self.process_trigger(game, trigger, now))
            except Exception as e:
                self.db.rollback()
                logger.error(f"Error processing {trigger.trigger_type} for {game.game_key}: {e}", exc_info=True)
                outcomes.append(TriggerOutcome(
                    trigger.trigger_type, TriggerStatus.FAILED, str(e), game.current_round or 1
                ))
        return outcomes

    async def process_all_triggers(self, now: Optional[datetime] = None) -> TriggerRunSummary:
        """Process triggers for all active games."""
        now = now or self._clock()
        logger.info("Processing triggers for all active games")
        summary = TriggerRunSummary()

        for game in self.games.find_active():
            outcomes = await self.process_game_triggers(game, now)
            summary.games_processed += 1
            summary.outcomes.extend(outcomes)
            for outcome in outcomes:
                if outcome.status == TriggerStatus.TRIGGERED:
                    summary.triggers_executed += 1
                elif outcome.status == TriggerStatus.FAILED:
                    summary.errors += 1
                else:
                    summary.triggers_skipped += 1

        logger.info(
            f"Trigger processing completed: {summary.games_processed} games, "
            f"{summary.triggers_executed} triggered, {summary.errors} errors"
        )
        return summary
