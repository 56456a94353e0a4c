"""Scheduler for periodic mirror runs.

This module provides:
- Cron-driven enqueueing of one sync job per active sync item
- Schedule validation and live replacement when the setting changes
- Manual trigger for CLI/API usage
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from sftpmirror.server.database import SYNC_SCHEDULE
from sftpmirror.sync.types import ConfigurationError

if TYPE_CHECKING:
    from sftpmirror.server.database import Database

logger = logging.getLogger(__name__)

JOB_ID = "sync_all"


def parse_schedule(expression: str) -> CronTrigger:
    """Build a trigger from a five-field crontab expression.

    Raises:
        ConfigurationError: If the expression is not a valid crontab.
    """
    try:
        return CronTrigger.from_crontab(expression.strip())
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression {expression!r}: {e}") from e


def enqueue_scheduled_run(db: Database) -> list[str]:
    """Queue a priority-0 sync job for every active item, if syncing is enabled.

    Args:
        db: Database instance.

    Returns:
        IDs of the queued jobs (empty when global sync is disabled).
    """
    if not db.is_global_sync_enabled():
        logger.info("Scheduled sync skipped: global sync disabled")
        return []

    job_ids = db.enqueue_active_items(priority=0)
    if job_ids:
        logger.info("Scheduled sync queued %d job(s)", len(job_ids))
    else:
        logger.debug("Scheduled sync: no active items")
    return job_ids


class SyncScheduler:
    """Fires the periodic sync on the crontab stored in settings.

    A single trigger is registered under a fixed ID; changing the schedule
    replaces it, so overlapping triggers never exist.
    """

    def __init__(self, db: Database) -> None:
        """Initialize the scheduler.

        Args:
            db: Database instance.
        """
        self._db = db
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_running(self) -> bool:
        """Check if the background scheduler is started."""
        return self._scheduler is not None

    def _tick_job(self) -> None:
        """Job function for the scheduled sync."""
        try:
            enqueue_scheduled_run(self._db)
        except Exception:
            logger.exception("Error during scheduled sync")

    def _register(self, expression: str) -> None:
        if self._scheduler is None:
            return  # Not started
        self._scheduler.add_job(
            self._tick_job,
            trigger=parse_schedule(expression),
            id=JOB_ID,
            name="Scheduled sync",
            replace_existing=True,
        )

    def start(self) -> None:
        """Start the scheduler with the persisted schedule."""
        if self._scheduler is not None:
            return  # Already running

        expression = self._db.get_setting(SYNC_SCHEDULE) or "0 * * * *"
        self._scheduler = BackgroundScheduler()
        try:
            self._register(expression)
        except ConfigurationError:
            logger.exception("Stored schedule %r is invalid; scheduled sync disabled", expression)
        self._scheduler.start()
        logger.info("Sync scheduler started (schedule: %s)", expression)

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync scheduler stopped")

    def update_schedule(self, expression: str) -> None:
        """Validate, persist and apply a new crontab expression.

        Raises:
            ConfigurationError: If the expression is invalid (nothing is saved).
        """
        parse_schedule(expression)
        self._db.set_setting(SYNC_SCHEDULE, expression.strip())
        if self._scheduler is not None:
            self._register(expression)
        logger.info("Sync schedule updated: %s", expression)

    def next_run_time(self) -> str | None:
        """Next fire time as ISO string, or None when not scheduled."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    def run_now(self) -> list[str]:
        """Run the scheduled sync immediately (manual trigger).

        Returns:
            IDs of the queued jobs.
        """
        return enqueue_scheduled_run(self._db)
