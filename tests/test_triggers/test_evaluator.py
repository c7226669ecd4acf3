"""
Tests for TriggerEvaluator.

Conditions, the per-round watermark and the trigger log. The campaign API
is an httpx.MockTransport that records every dispatched payload.
"""
import json
from datetime import datetime, timedelta

import httpx
import pytest
from sqlalchemy.exc import SQLAlchemyError

from fantasy_sync.models import TriggerLog, TriggerStatus
from fantasy_sync.services.triggers.campaign_dispatcher import CampaignDispatcher
from fantasy_sync.services.triggers.evaluator import TriggerEvaluator
from conftest import create_game, create_trigger

NOW = datetime(2026, 3, 1, 12, 0, 0)


class CampaignApi:
    """Records campaign sends and answers with a fixed status."""

    def __init__(self, status: int = 200):
        self.status = status
        self.sent = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.sent.append(json.loads(request.content))
        if self.status >= 400:
            return httpx.Response(self.status, json={"message": "campaign not found"})
        return httpx.Response(self.status, json={"id": "send-1", "status": "queued"})


@pytest.fixture
def campaign_api():
    return CampaignApi()


@pytest.fixture
def evaluator(db_session, settings, alerts, campaign_api):
    dispatcher = CampaignDispatcher(
        "https://campaigns.test/v1", "campaign-key", transport=httpx.MockTransport(campaign_api.handler)
    )
    return TriggerEvaluator(db_session, dispatcher, settings, alert_notifier=alerts, clock=lambda: NOW)


def logs_for(db, trigger):
    return db.query(TriggerLog).filter(TriggerLog.trigger_id == trigger.id).all()


# ─────────────────────────────────────────────────────────────────────────────
# Round started / ended
# ─────────────────────────────────────────────────────────────────────────────

class TestRoundTriggers:

    @pytest.mark.asyncio
    async def test_already_triggered_for_round(self, evaluator, db_session, campaign_api):
        """Should skip a round the trigger already fired for."""
        game = create_game(db_session, round_state="CurrentOpen", current_round=5)
        trigger = create_trigger(db_session, game, "round_started", last_triggered_round=5)

        outcome = await evaluator.process_trigger(game, trigger)

        assert outcome.status == TriggerStatus.SKIPPED
        assert outcome.message == "Already triggered for round 5"
        assert campaign_api.sent == []
        [log] = logs_for(db_session, trigger)
        assert log.status == "skipped"
        assert log.reason == "Already triggered for round 5"

    @pytest.mark.asyncio
    async def test_new_round_fires_once(self, evaluator, db_session, campaign_api):
        """Should fire for round 6 after round 5 and then stay quiet."""
        game = create_game(db_session, round_state="CurrentOpen", current_round=6, total_rounds=30)
        trigger = create_trigger(db_session, game, "round_started", last_triggered_round=5)

        first = await evaluator.process_trigger(game, trigger)
        second = await evaluator.process_trigger(game, trigger)

        assert first.status == TriggerStatus.TRIGGERED
        assert first.dispatched
        assert second.status == TriggerStatus.SKIPPED
        assert len(campaign_api.sent) == 1
        assert trigger.last_triggered_round == 6
        assert trigger.last_triggered_at is not None

        sent = campaign_api.sent[0]
        assert sent["campaign_id"] == "campaign-round_started"
        assert sent["broadcast"] is True
        assert sent["trigger_properties"]["current_round"] == 6
        assert sent["trigger_properties"]["total_rounds"] == 30

        statuses = [log.status for log in logs_for(db_session, trigger)]
        assert sorted(statuses) == ["skipped", "triggered"]

    def test_round_started_needs_open_round(self, evaluator, db_session):
        """Should not fire round_started while the round is pending."""
        game = create_game(db_session, round_state="Pending", current_round=3)
        trigger = create_trigger(db_session, game, "round_started")

        check = evaluator.check_trigger(game, trigger)

        assert check.should_trigger is False
        assert check.reason == "Round state is Pending, not CurrentOpen"

    @pytest.mark.asyncio
    async def test_round_ended_accepts_ended_latest(self, evaluator, db_session, campaign_api):
        """Should fire round_ended for the EndedLatest state."""
        game = create_game(db_session, round_state="EndedLatest", current_round=8)
        trigger = create_trigger(db_session, game, "round_ended", last_triggered_round=7)

        outcome = await evaluator.process_trigger(game, trigger)

        assert outcome.status == TriggerStatus.TRIGGERED
        assert trigger.last_triggered_round == 8

    def test_unknown_trigger_type(self, evaluator, db_session):
        """Should never fire a trigger type it does not know."""
        game = create_game(db_session, round_state="CurrentOpen")
        trigger = create_trigger(db_session, game, "season_finale")

        check = evaluator.check_trigger(game, trigger)

        assert check.should_trigger is False
        assert check.reason == "Unknown trigger type: season_finale"


# ─────────────────────────────────────────────────────────────────────────────
# Deadline reminder window
# ─────────────────────────────────────────────────────────────────────────────

class TestDeadlineReminder:

    @pytest.mark.parametrize("hours_away,fires", [
        (25, True),
        (20, True),
        (28.5, True),
        (19.5, False),
        (29, False),
    ])
    def test_window(self, evaluator, db_session, hours_away, fires):
        """Should only fire between 20 and 28 whole hours before the deadline."""
        game = create_game(
            db_session,
            round_state="CurrentOpen",
            current_round=2,
            next_trade_deadline=NOW + timedelta(hours=hours_away),
        )
        trigger = create_trigger(db_session, game, "deadline_reminder_24h")

        check = evaluator.check_trigger(game, trigger)

        assert check.should_trigger is fires

    def test_reason_outside_window(self, evaluator, db_session):
        """Should explain how far away the deadline is."""
        game = create_game(db_session, next_trade_deadline=NOW + timedelta(hours=19))
        trigger = create_trigger(db_session, game, "deadline_reminder_24h")

        check = evaluator.check_trigger(game, trigger)

        assert check.reason == "Deadline is 19h away (need 20-28h)"

    def test_no_deadline(self, evaluator, db_session):
        """Should skip games without a known deadline."""
        game = create_game(db_session, next_trade_deadline=None)
        trigger = create_trigger(db_session, game, "deadline_reminder_24h")

        assert evaluator.check_trigger(game, trigger).reason == "No trade deadline set"

    @pytest.mark.asyncio
    async def test_deadline_in_properties(self, evaluator, db_session, campaign_api):
        """Should pass the deadline to the campaign as ISO 8601 UTC."""
        deadline = NOW + timedelta(hours=24)
        game = create_game(db_session, current_round=2, next_trade_deadline=deadline)
        trigger = create_trigger(db_session, game, "deadline_reminder_24h", last_triggered_round=1)

        await evaluator.process_trigger(game, trigger)

        assert campaign_api.sent[0]["trigger_properties"]["trade_deadline"] == "2026-03-02T12:00:00Z"


# ─────────────────────────────────────────────────────────────────────────────
# Dispatch failures and missing configuration
# ─────────────────────────────────────────────────────────────────────────────

class TestDispatchOutcomes:

    @pytest.mark.asyncio
    async def test_failed_dispatch_keeps_watermark(self, evaluator, db_session, campaign_api, alerts):
        """Should log the failure, alert and retry on the next pass."""
        campaign_api.status = 500
        game = create_game(db_session, round_state="CurrentOpen", current_round=6)
        trigger = create_trigger(db_session, game, "round_started", last_triggered_round=5)

        outcome = await evaluator.process_trigger(game, trigger)

        assert outcome.status == TriggerStatus.FAILED
        assert outcome.message == "Failed to trigger: campaign not found"
        assert trigger.last_triggered_round == 5
        [log] = logs_for(db_session, trigger)
        assert log.status == "failed"
        assert log.error_message == "campaign not found"
        alerts.notify_trigger_failure.assert_awaited_once_with(
            "premier-league", "round_started", 6, "campaign not found"
        )

        campaign_api.status = 200
        retry = await evaluator.process_trigger(game, trigger)

        assert retry.status == TriggerStatus.TRIGGERED
        assert trigger.last_triggered_round == 6

    @pytest.mark.asyncio
    async def test_failed_commit_records_nothing(self, evaluator, db_session, monkeypatch):
        """Should drop the triggered log together with the watermark when the commit fails."""
        game = create_game(db_session, round_state="CurrentOpen", current_round=6)
        trigger = create_trigger(db_session, game, "round_started", last_triggered_round=5)

        def failing_save():
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(evaluator.trigger_logs, "save", failing_save)

        [outcome] = await evaluator.process_game_triggers(game, NOW)

        assert outcome.status == TriggerStatus.FAILED
        assert outcome.message == "connection lost"
        db_session.refresh(trigger)
        assert trigger.last_triggered_round == 5
        assert logs_for(db_session, trigger) == []

        monkeypatch.undo()
        [retry] = await evaluator.process_game_triggers(game, NOW)

        assert retry.status == TriggerStatus.TRIGGERED
        assert trigger.last_triggered_round == 6
        assert [log.status for log in logs_for(db_session, trigger)] == ["triggered"]

    @pytest.mark.asyncio
    async def test_unconfigured_campaigns_skip(self, db_session, settings):
        """Should log a skip and leave the watermark when no credentials are set."""
        evaluator = TriggerEvaluator(db_session, CampaignDispatcher("", ""), settings, clock=lambda: NOW)
        game = create_game(db_session, round_state="CurrentOpen", current_round=6)
        trigger = create_trigger(db_session, game, "round_started", last_triggered_round=5)

        outcome = await evaluator.process_trigger(game, trigger)

        assert outcome.status == TriggerStatus.SKIPPED
        assert outcome.message == "Campaign integration not configured"
        assert trigger.last_triggered_round == 5
        [log] = logs_for(db_session, trigger)
        assert log.status == "skipped"
        assert log.reason == "Campaign integration not configured"


# ─────────────────────────────────────────────────────────────────────────────
# Full pass
# ─────────────────────────────────────────────────────────────────────────────

class TestProcessAllTriggers:

    @pytest.mark.asyncio
    async def test_summary(self, evaluator, db_session, campaign_api):
        """Should count triggered, skipped and failed outcomes across games."""
        open_game = create_game(db_session, game_key="allsvenskan", round_state="CurrentOpen", current_round=3)
        create_trigger(db_session, open_game, "round_started", last_triggered_round=2)
        create_trigger(db_session, open_game, "round_ended")

        ended_game = create_game(db_session, game_key="shl", round_state="Ended", current_round=10)
        create_trigger(db_session, ended_game, "round_ended", last_triggered_round=10)
        create_trigger(db_session, ended_game, "round_started", is_active=False)

        create_game(db_session, game_key="archived", is_active=False, round_state="CurrentOpen")

        summary = await evaluator.process_all_triggers()

        assert summary.games_processed == 2
        assert summary.triggers_executed == 1
        assert summary.triggers_skipped == 2
        assert summary.errors == 0
        assert len(campaign_api.sent) == 1
        assert "outcomes" not in summary.to_dict()

    @pytest.mark.asyncio
    async def test_unexpected_error_isolated(self, evaluator, db_session, monkeypatch):
        """Should record an unexpected error on one trigger and continue with the next."""
        game = create_game(db_session, round_state="CurrentOpen", current_round=3)
        create_trigger(db_session, game, "round_ended")
        create_trigger(db_session, game, "round_started")

        original = evaluator.check_trigger

        def exploding_check(game, trigger, now=None):
            if trigger.trigger_type == "round_ended":
                raise RuntimeError("corrupt trigger row")
            return original(game, trigger, now)

        monkeypatch.setattr(evaluator, "check_trigger", exploding_check)

        outcomes = await evaluator.process_game_triggers(game, NOW)

        assert [o.status for o in outcomes] == [TriggerStatus.FAILED, TriggerStatus.TRIGGERED]
        assert outcomes[0].message == "corrupt trigger row"
