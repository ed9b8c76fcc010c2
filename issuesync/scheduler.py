"""Single runs and periodic sync"""

import logging
import signal
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from issuesync.config import DATE_FORMAT, save_since
from issuesync.exceptions import SyncCancelled
from issuesync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

JOB_ID = "issue_sync"


class SyncRunner:
    """Runs one sync at a time and advances the `since` watermark after each success"""

    def __init__(self, settings, service: SyncService, config_path: Optional[Path] = None):
        self.settings = settings
        self.service = service
        self.config_path = config_path
        self._lock = threading.Lock()

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def run_once(self) -> Dict[str, Any]:
        """Run a sync unless one is already in progress.

        Errors that abort the whole run propagate and leave the watermark alone.
        """
        if not self._lock.acquire(blocking=False):
            logger.warning("A sync is already running; skipping this run")
            return {"status": "skipped"}

        try:
            started = self._now()
            stats = self.service.sync(self.settings.since)

            if self.settings.dry_run:
                logger.info("Dry run: not saving the new since date")
            else:
                self.settings.since = started
                if self.config_path is not None:
                    save_since(self.config_path, started)
                logger.debug(f"Since date is now {started.strftime(DATE_FORMAT)}")
            return {"status": "success", "stats": stats}
        finally:
            self._lock.release()


class SyncScheduler:
    """Runs SyncRunner every `period_seconds` until stopped"""

    def __init__(self, runner: SyncRunner, period_seconds: int, cancel_event: Optional[threading.Event] = None):
        self.runner = runner
        self.period_seconds = period_seconds
        self.cancel_event = cancel_event or threading.Event()
        self.scheduler = BlockingScheduler()

    def start(self):
        """Start the scheduler; blocks until stop() is called"""
        self.scheduler.add_job(
            func=self._sync_job,
            trigger=IntervalTrigger(seconds=self.period_seconds),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        logger.info(f"Scheduled sync every {self.period_seconds} seconds")
        self.scheduler.start()

    def stop(self):
        """Cancel the running sync, if any, and stop the scheduler"""
        self.cancel_event.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    def install_signal_handlers(self):
        def _handle(signum, frame):
            logger.info(f"Received signal {signum}, shutting down")
            self.stop()

        signal.signal(signal.SIGINT, _handle)
        signal.signal(signal.SIGTERM, _handle)

    def _sync_job(self):
        """Job function for one scheduled sync"""
        try:
            logger.info("Running scheduled sync")
            result = self.runner.run_once()
            logger.info(f"Scheduled sync finished: {result}")
        except SyncCancelled:
            logger.info("Scheduled sync cancelled")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")
