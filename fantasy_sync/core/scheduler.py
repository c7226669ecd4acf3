"""
Automated task scheduler for the fantasy sync service.

Background jobs:
- Sync check: every SYNC_CHECK_INTERVAL_MINUTES, sync the games that are due
  (critical periods make a game due every CRITICAL_SYNC_INTERVAL_MINUTES)
- Trigger check: every TRIGGER_CHECK_INTERVAL_MINUTES, evaluate campaign triggers

Scheduler: APScheduler (lightweight, FastAPI-compatible). Deployments that
use an external cron instead run `run_scheduler.py --run-job sync|triggers`.
"""
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fantasy_sync.core.config import Settings
from fantasy_sync.core.logging import get_logger
from fantasy_sync.core.metrics import update_scheduler_metrics
from fantasy_sync.services.sync.runner import SyncJobRunner

logger = get_logger(__name__)


class AutomationScheduler:
    """
    Scheduler for the sync and trigger jobs.

    All scheduled jobs are defined here with their schedules and error
    handling; the work itself lives in SyncJobRunner.
    """

    def __init__(self, runner: SyncJobRunner, settings: Settings):
        self.runner = runner
        self.settings = settings
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting automation scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone=self.settings.SCHEDULER_TIMEZONE,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 120
            }
        )

        self._schedule_sync_check()
        self._schedule_trigger_check()

        self.scheduler.start()
        self.running = True
        update_scheduler_metrics(self)

        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        update_scheduler_metrics(self)
        logger.info("✅ Scheduler stopped")

    def _schedule_sync_check(self):
        """
        Schedule: Sync games that are due.

        Frequency: every SYNC_CHECK_INTERVAL_MINUTES (default 5)
        Purpose: each game decides from its own interval and round state
        whether this tick syncs it
        """
        if self.scheduler is None:
            return

        interval = self.settings.SYNC_CHECK_INTERVAL_MINUTES

        @self.scheduler.scheduled_job(
            trigger=IntervalTrigger(minutes=interval),
            id='sync_check',
            name='Sync Due Games',
        )
        async def sync_check_job():
            try:
                summary = await self.runner.run_scheduled_sync()
                if summary['games_due']:
                    logger.info(
                        f"✅ Sync check: {summary['games_synced']}/{summary['games_due']} synced, "
                        f"{summary['games_failed']} failed ({summary['duration_ms']}ms)"
                    )
            except Exception as e:
                logger.error(f"❌ Sync check failed: {e}")

        logger.info(f"📅 Scheduled: Sync check (every {interval} min)")

    def _schedule_trigger_check(self):
        """
        Schedule: Evaluate campaign triggers.

        Frequency: every TRIGGER_CHECK_INTERVAL_MINUTES (default 15)
        Purpose: the 20-28h deadline window is wide enough that a 15 min
        cadence cannot miss it
        """
        if self.scheduler is None:
            return

        interval = self.settings.TRIGGER_CHECK_INTERVAL_MINUTES

        @self.scheduler.scheduled_job(
            trigger=IntervalTrigger(minutes=interval),
            id='trigger_check',
            name='Evaluate Campaign Triggers',
        )
        async def trigger_check_job():
            try:
                summary = await self.runner.run_trigger_pass()
                logger.info(
                    f"✅ Trigger check: {summary['triggers_executed']} triggered, "
                    f"{summary['errors']} errors"
                )
            except Exception as e:
                logger.error(f"❌ Trigger check failed: {e}")

        logger.info(f"📅 Scheduled: Trigger check (every {interval} min)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        jobs = self.scheduler.get_jobs()

        logger.info("=" * 60)
        logger.info("SCHEDULED AUTOMATION JOBS")
        logger.info("=" * 60)

        for job in jobs:
            next_run = job.next_run_time
            next_run_str = next_run.strftime('%Y-%m-%d %H:%M %Z') if next_run else 'Pending'
            logger.info(f"  • {job.name}")
            logger.info(f"    ID: {job.id}")
            logger.info(f"    Next run: {next_run_str}")

        logger.info("=" * 60)
        logger.info(f"Total jobs scheduled: {len(jobs)}")
        logger.info("=" * 60)
