"""Tests for the APScheduler-based AutomationScheduler."""
from unittest.mock import AsyncMock

import pytest

from fantasy_sync.core.scheduler import AutomationScheduler


class TestAutomationScheduler:

    @pytest.mark.asyncio
    async def test_registers_jobs(self, settings):
        """Should schedule the sync and trigger checks at their intervals."""
        scheduler = AutomationScheduler(AsyncMock(), settings)

        await scheduler.start()
        try:
            jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}

            assert set(jobs) == {"sync_check", "trigger_check"}
            assert jobs["sync_check"].trigger.interval.total_seconds() == 5 * 60
            assert jobs["trigger_check"].trigger.interval.total_seconds() == 15 * 60
            assert scheduler.running is True
        finally:
            await scheduler.stop()

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, settings):
        scheduler = AutomationScheduler(AsyncMock(), settings)

        await scheduler.start()
        first = scheduler.scheduler
        await scheduler.start()

        assert scheduler.scheduler is first
        await scheduler.stop()
