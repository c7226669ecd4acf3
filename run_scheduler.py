#!/usr/bin/env python3
"""
Runner for the fantasy sync automation scheduler.

Runs the scheduler as a standalone background service (systemd, supervisor
or directly), or runs a single job pass for deployments driven by an
external cron.

Usage:
    python run_scheduler.py                      # Run scheduler in foreground
    python run_scheduler.py --run-job sync       # One scheduled sync pass, then exit
    python run_scheduler.py --run-job triggers   # One trigger pass, then exit
    python run_scheduler.py --sync-game GAME_ID  # Manual sync of one game
    python run_scheduler.py --verify-key         # Check the partner API key
    python run_scheduler.py --list-jobs          # Show the job schedule
"""
import asyncio
import argparse
import json
import signal
import sys
from typing import Optional

from fantasy_sync.core.config import Settings, get_settings
from fantasy_sync.core.database import create_db_engine, create_session_factory, init_db
from fantasy_sync.core.exceptions import GameNotFoundError, SyncFailedError, SyncInProgressError, TransientError
from fantasy_sync.core.logging import configure_logging, get_logger
from fantasy_sync.core.scheduler import AutomationScheduler
from fantasy_sync.services.sync.runner import SyncJobRunner

logger = get_logger(__name__)

JOBS = ("sync", "triggers")


class SchedulerRunner:
    """Runner for the automation scheduler."""

    def __init__(self, job_runner: SyncJobRunner, settings: Settings):
        self.job_runner = job_runner
        self.settings = settings
        self.scheduler: Optional[AutomationScheduler] = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("🚀 Starting scheduler runner...")

        self.scheduler = AutomationScheduler(self.job_runner, self.settings)
        await self.scheduler.start()

        logger.info("✅ Scheduler is now running")
        logger.info("Press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()
        await self.job_runner.close()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        """Set shutdown flag."""
        logger.info("⏹️  Shutdown signal received")
        self.shutdown = True


async def run_job(job_runner: SyncJobRunner, job: str) -> int:
    """Run one pass of a job and print its summary as JSON."""
    try:
        if job == "sync":
            summary = await job_runner.run_scheduled_sync()
        else:
            summary = await job_runner.run_trigger_pass()
    finally:
        await job_runner.close()

    print(json.dumps(summary, indent=2, default=str))
    return 0


async def run_game_sync(job_runner: SyncJobRunner, game_id: str) -> int:
    """Manually sync one game. Exit code 1 on failure."""
    try:
        result = await job_runner.run_manual_sync(game_id)
    except GameNotFoundError:
        print(f"❌ Game '{game_id}' not found")
        return 1
    except SyncInProgressError as e:
        print(f"⚠️  {e}")
        return 1
    except SyncFailedError as e:
        print(f"❌ Sync failed in {e.phase} phase: {e.message}")
        return 1
    finally:
        await job_runner.close()

    print(f"✅ Synced {result.game_key}: {result.elements_synced} elements, {result.users_synced} users")
    return 0


async def run_verify_key(job_runner: SyncJobRunner) -> int:
    try:
        valid = await job_runner.verify_partner_key()
    except TransientError as e:
        print(f"❌ Partner API unavailable: {e.message}")
        return 1
    finally:
        await job_runner.close()

    print("✅ Partner API key is valid" if valid else "❌ Partner API key is invalid")
    return 0 if valid else 1


def list_jobs(settings: Settings) -> None:
    print("=" * 60)
    print("SCHEDULED AUTOMATION JOBS")
    print("=" * 60)
    print(f"📋 Sync Due Games (sync_check): every {settings.SYNC_CHECK_INTERVAL_MINUTES} min")
    print(f"📋 Evaluate Campaign Triggers (trigger_check): every {settings.TRIGGER_CHECK_INTERVAL_MINUTES} min")
    print(f"   Scheduler enabled: {settings.SCHEDULER_ENABLED}")
    print("=" * 60)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Run the fantasy sync automation scheduler'
    )

    parser.add_argument(
        '--run-job',
        choices=JOBS,
        help='Run one pass of a job and exit (for external cron)'
    )

    parser.add_argument(
        '--sync-game',
        type=str,
        metavar='GAME_ID',
        help='Manually sync one game and exit'
    )

    parser.add_argument(
        '--verify-key',
        action='store_true',
        help='Check the partner API key and exit'
    )

    parser.add_argument(
        '--list-jobs',
        action='store_true',
        help='List scheduled jobs and exit'
    )

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    if args.list_jobs:
        list_jobs(settings)
        return 0

    engine = create_db_engine(settings)
    init_db(engine)
    job_runner = SyncJobRunner.from_settings(settings, create_session_factory(engine))

    try:
        if args.run_job:
            return asyncio.run(run_job(job_runner, args.run_job))

        if args.sync_game:
            return asyncio.run(run_game_sync(job_runner, args.sync_game))

        if args.verify_key:
            return asyncio.run(run_verify_key(job_runner))

        asyncio.run(SchedulerRunner(job_runner, settings).start())
        return 0
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    finally:
        engine.dispose()


if __name__ == '__main__':
    sys.exit(main())
