"""Control surface for sync items, jobs and settings.

This module provides:
- MirrorService: the operations the HTTP API and the CLI call
- ItemOverview, JobPage: read models returned by listings

Control operations only write job rows and controller flags; the worker
observes them at its next checkpoint. Every control operation is idempotent
and returns False when the job is not in a state the operation applies to.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sftpmirror.server.database import (
    CONNECTION_TIMEOUT_MINUTES,
    GLOBAL_SYNC_ENABLED,
    SYNC_SCHEDULE,
)
from sftpmirror.server.scheduler import parse_schedule
from sftpmirror.sync.control import ControllerRegistry
from sftpmirror.sync.domain import (
    MANUAL_PRIORITY,
    ItemKind,
    ItemStatus,
    JobKind,
    JobStatus,
    is_terminal,
)
from sftpmirror.sync.planner import DiffPlanner
from sftpmirror.sync.transfer import REMOTE_ERRORS
from sftpmirror.sync.types import (
    ConfigurationError,
    DiffStatus,
    DuplicateItemError,
    ItemNotFoundError,
    JobNotFoundError,
    MirrorError,
)

if TYPE_CHECKING:
    from sftpmirror.server.database import Database
    from sftpmirror.server.models import Job, SyncItem
    from sftpmirror.server.scheduler import SyncScheduler
    from sftpmirror.sync.connection import ConnectionProvider

logger = logging.getLogger(__name__)

PREEMPTED_MESSAGE = "Paused by higher-priority job"

# Statuses of jobs that still hold a claim on their item
OPEN_STATUSES = (
    JobStatus.QUEUED,
    JobStatus.RUNNING,
    JobStatus.PAUSING,
    JobStatus.PAUSED,
    JobStatus.CANCELLING,
)

# Which open job to show for an item: executing beats paused beats queued
_DISPLAY_RANK = {
    JobStatus.RUNNING.value: 0,
    JobStatus.PAUSING.value: 0,
    JobStatus.CANCELLING.value: 0,
    JobStatus.PAUSED.value: 1,
    JobStatus.QUEUED.value: 2,
}


@dataclass
class ItemOverview:
    """A sync item with the job most relevant to show next to it."""

    item: SyncItem
    job: Job | None = None


@dataclass
class JobPage:
    """One page of the job history plus global counters."""

    jobs: list[Job]
    total: int
    page: int
    limit: int
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return max((self.total + self.limit - 1) // self.limit, 1)


class MirrorService:
    """Operations on sync items, jobs and settings.

    Usage:
        service = MirrorService(db, provider, registry=worker.registry)
        item = service.create_sync_item("/data", "/mnt/data", "folder")
        service.prioritize(job_id)
    """

    def __init__(
        self,
        db: Database,
        provider: ConnectionProvider,
        registry: ControllerRegistry | None = None,
        scheduler: SyncScheduler | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            db: Job store.
            provider: Opens SFTP sessions for diff checks.
            registry: Controllers of live runs (shared with the worker).
            scheduler: Running scheduler to update when the schedule changes.
        """
        self._db = db
        self._provider = provider
        self._registry = registry if registry is not None else ControllerRegistry()
        self._scheduler = scheduler

    @property
    def db(self) -> Database:
        return self._db

    @property
    def registry(self) -> ControllerRegistry:
        return self._registry

    # === Sync items ===

    def _require_item(self, item_id: int) -> SyncItem:
        item = self._db.get_sync_item(item_id)
        if item is None or item.status == ItemStatus.DELETED.value:
            raise ItemNotFoundError(f"Sync item {item_id} not found")
        return item

    def create_sync_item(
        self,
        remote_path: str,
        local_path: str,
        kind: ItemKind | str,
        active: bool = True,
    ) -> SyncItem:
        """Register a remote/local pair and queue its first sync.

        A soft-deleted pair is restored instead of duplicated.

        Raises:
            ConfigurationError: If a path is empty or ``kind`` is unknown.
            DuplicateItemError: If a live item already covers the pair.
        """
        if not remote_path or not local_path:
            raise ConfigurationError("remote_path and local_path are required")
        try:
            item_kind = ItemKind(kind)
        except ValueError as e:
            raise ConfigurationError(f"Invalid item kind: {kind!r}") from e

        existing = self._db.get_sync_item_by_paths(remote_path, local_path)
        if existing is not None and existing.status != ItemStatus.DELETED.value:
            raise DuplicateItemError(f"{remote_path} is already mirrored to {local_path}")

        if existing is not None:
            self._db.restore_sync_item(existing.id)
            if not active:
                self._db.set_sync_item_active(existing.id, False)
            item_id = existing.id
            logger.info("Restored sync item %d: %s -> %s", item_id, remote_path, local_path)
        else:
            item_id = self._db.create_sync_item(
                remote_path, local_path, item_kind.value, active=active
            ).id
            logger.info("Created sync item %d: %s -> %s", item_id, remote_path, local_path)

        if active:
            self._db.create_job(item_id, JobKind.SYNC)
        return self._require_item(item_id)

    def list_sync_items(self) -> list[ItemOverview]:
        """List live items, each with its most relevant open job."""
        by_item: dict[int, Job] = {}
        for job in self._db.list_jobs_for_items(OPEN_STATUSES):
            current = by_item.get(job.sync_item_id)
            if current is None or _DISPLAY_RANK[job.status] < _DISPLAY_RANK[current.status]:
                by_item[job.sync_item_id] = job
        return [ItemOverview(item=item, job=by_item.get(item.id)) for item in self._db.list_sync_items()]

    def toggle_sync_item(self, item_id: int, active: bool) -> SyncItem:
        """Include or exclude an item from scheduled runs."""
        self._require_item(item_id)
        self._db.set_sync_item_active(item_id, active)
        logger.info("Sync item %d %s", item_id, "activated" if active else "deactivated")
        return self._require_item(item_id)

    def delete_sync_item(self, item_id: int, delete_files: bool = False) -> None:
        """Cancel the item's open jobs and soft-delete it.

        Args:
            item_id: Sync item ID.
            delete_files: Also remove the local copy.
        """
        item = self._require_item(item_id)
        for job_id in self._db.list_job_ids(OPEN_STATUSES, sync_item_id=item_id):
            self.cancel(job_id)

        if delete_files:
            self._remove_local(item.local_path)

        self._db.soft_delete_sync_item(item_id)
        logger.info("Deleted sync item %d (files removed: %s)", item_id, delete_files)

    def _remove_local(self, local_path: str) -> None:
        try:
            if os.path.isdir(local_path) and not os.path.islink(local_path):
                shutil.rmtree(local_path)
            else:
                os.remove(local_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove %s: %s", local_path, e)

    # === Enqueueing ===

    def enqueue(
        self,
        sync_item_id: int,
        priority: int = 0,
        kind: JobKind | str = JobKind.SYNC,
    ) -> str:
        """Queue a job for an item.

        Returns:
            The new job ID.
        """
        self._require_item(sync_item_id)
        job = self._db.create_job(sync_item_id, JobKind(kind), priority=priority)
        logger.info("Queued %s job %s for item %d (priority %d)", job.kind, job.id, sync_item_id, priority)
        return job.id

    def run_now(self, sync_item_id: int) -> str:
        """Queue a manual sync that supersedes the item's paused jobs.

        Manual runs use MANUAL_PRIORITY, which also lets inactive items run.

        Returns:
            The new job ID.
        """
        self._require_item(sync_item_id)
        for job_id in self._db.list_job_ids([JobStatus.PAUSED], sync_item_id=sync_item_id):
            self._db.transition_job(
                job_id,
                JobStatus.CANCELLED,
                expected=[JobStatus.PAUSED],
                log="Superseded by manual run",
            )
        self._db.clear_sync_item_error(sync_item_id)
        return self.enqueue(sync_item_id, priority=MANUAL_PRIORITY)

    # === Job control ===

    def _require_status(self, job_id: str) -> JobStatus:
        status = self._db.get_job_status(job_id)
        if status is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return status

    def cancel(self, job_id: str) -> bool:
        """Cancel a job in any non-terminal state.

        Live runs are asked to stop (cancelling) and end as cancelled at the
        next checkpoint. Orphaned runs are cancelled immediately.
        """
        status = self._require_status(job_id)

        if status in (JobStatus.RUNNING, JobStatus.PAUSING, JobStatus.CANCELLING):
            control = self._registry.get(job_id)
            if control is None:
                logger.warning("Job %s has no live run; force cancelling", job_id)
                return self._db.transition_job(
                    job_id, JobStatus.CANCELLED, log="Force cancelled (orphaned)"
                )
            control.request_cancel()
            if status != JobStatus.CANCELLING:
                self._db.transition_job(
                    job_id,
                    JobStatus.CANCELLING,
                    expected=[JobStatus.RUNNING, JobStatus.PAUSING],
                    log="Cancelling",
                )
            return True

        if status in (JobStatus.QUEUED, JobStatus.PAUSED):
            if self._db.transition_job(
                job_id,
                JobStatus.CANCELLED,
                expected=[JobStatus.QUEUED, JobStatus.PAUSED],
                log="Cancelled by user",
            ):
                return True
            # Claimed by the worker in between
            if self._db.get_job_status(job_id) == JobStatus.RUNNING:
                return self.cancel(job_id)
        return False

    def pause(self, job_id: str, message: str = "Paused by user") -> bool:
        """Pause a running job at its next checkpoint.

        Orphaned runs move straight to paused.
        """
        status = self._require_status(job_id)
        if status not in (JobStatus.RUNNING, JobStatus.PAUSING):
            return False

        control = self._registry.get(job_id)
        if control is None:
            logger.warning("Job %s has no live run; pausing directly", job_id)
            return self._db.transition_job(
                job_id,
                JobStatus.PAUSED,
                expected=[JobStatus.RUNNING, JobStatus.PAUSING],
                log="Paused (orphaned)",
            )

        if status == JobStatus.PAUSING:
            return True
        if not self._db.transition_job(
            job_id, JobStatus.PAUSING, expected=[JobStatus.RUNNING], log="Pausing"
        ):
            return False
        control.request_pause(message)
        return True

    def preempt(self, job_id: str) -> bool:
        """Pause a running job so a higher-priority job runs next."""
        paused = self.pause(job_id, message=PREEMPTED_MESSAGE)
        if paused:
            logger.info("Preempted job %s", job_id)
        return paused

    def resume(self, job_id: str) -> bool:
        """Requeue a paused job, or withdraw a pause not yet observed."""
        status = self._require_status(job_id)

        if status == JobStatus.PAUSED:
            return self._db.transition_job(
                job_id, JobStatus.QUEUED, expected=[JobStatus.PAUSED], log="Queued"
            )

        if status == JobStatus.PAUSING:
            control = self._registry.get(job_id)
            if control is None:
                # Orphaned: settle as paused, then requeue
                self._db.transition_job(job_id, JobStatus.PAUSED, expected=[JobStatus.PAUSING])
                return self._db.transition_job(
                    job_id, JobStatus.QUEUED, expected=[JobStatus.PAUSED], log="Queued"
                )
            if control.withdraw_pause():
                return self._db.transition_job(
                    job_id, JobStatus.RUNNING, expected=[JobStatus.PAUSING], log="Running"
                )
        return False

    def set_priority(self, job_id: str, priority: int) -> bool:
        """Change a job's priority.

        Running jobs with a lower priority are preempted and a paused target
        is requeued, so the target runs next.
        """
        job = self.get_job(job_id)
        if is_terminal(job.status):
            return False

        self._db.set_job_priority(job_id, priority)
        logger.info("Job %s priority set to %d", job_id, priority)

        for running_id in self._db.list_job_ids(
            [JobStatus.RUNNING], exclude_id=job_id
        ):
            running = self._db.get_job(running_id)
            if running is not None and running.priority < priority:
                self.preempt(running_id)

        if job.status == JobStatus.PAUSED.value:
            self.resume(job_id)
        return True

    def prioritize(self, job_id: str) -> int:
        """Give a job a priority strictly above every other job.

        Returns:
            The new priority.
        """
        priority = self._db.max_priority() + 1
        self.set_priority(job_id, priority)
        return priority

    def pause_all(self) -> int:
        """Pause every running, pausing and queued job.

        Returns:
            Number of jobs paused or asked to pause.
        """
        count = 0
        for job_id in self._db.list_job_ids([JobStatus.RUNNING, JobStatus.PAUSING]):
            if self.pause(job_id):
                count += 1
        count += self._db.bulk_transition(JobStatus.QUEUED, JobStatus.PAUSED, log="Paused by user")
        logger.info("Paused %d job(s)", count)
        return count

    def resume_all(self) -> int:
        """Requeue every paused job and withdraw pending pauses.

        Returns:
            Number of jobs resumed.
        """
        count = 0
        for job_id in self._db.list_job_ids([JobStatus.PAUSING]):
            if self.resume(job_id):
                count += 1
        count += self._db.bulk_transition(JobStatus.PAUSED, JobStatus.QUEUED, log="Queued")
        logger.info("Resumed %d job(s)", count)
        return count

    # === Diff check ===

    def check_diff(self, sync_item_id: int) -> DiffStatus:
        """Compare an item's remote and local trees without changing anything."""
        item = self._require_item(sync_item_id)
        try:
            with self._provider.session() as sftp:
                plan = DiffPlanner(sftp).plan(item.kind, item.remote_path, item.local_path)
        except (MirrorError, *REMOTE_ERRORS) as e:
            logger.warning("Diff check for item %d failed: %s", sync_item_id, e)
            return DiffStatus(status="error", error=str(e))
        return DiffStatus.from_plan(plan)

    # === Jobs ===

    def get_job(self, job_id: str) -> Job:
        job = self._db.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(self, page: int = 1, limit: int = 25, search: str | None = None) -> JobPage:
        """List jobs most recent first."""
        page = max(page, 1)
        limit = max(limit, 1)
        jobs, total = self._db.list_jobs(page=page, limit=limit, search=search or None)
        return JobPage(jobs=jobs, total=total, page=page, limit=limit, stats=self._db.job_stats())

    # === Settings ===

    def get_settings(self) -> dict[str, str]:
        return self._db.get_settings()

    def update_settings(
        self,
        sync_schedule: str | None = None,
        global_sync_enabled: bool | None = None,
        connection_timeout_minutes: int | None = None,
    ) -> dict[str, str]:
        """Validate and store settings; a new schedule takes effect immediately.

        Raises:
            ConfigurationError: On an invalid cron expression or timeout.
        """
        if connection_timeout_minutes is not None and connection_timeout_minutes < 1:
            raise ConfigurationError("connection_timeout_minutes must be at least 1")
        if sync_schedule is not None:
            parse_schedule(sync_schedule)

        if sync_schedule is not None:
            if self._scheduler is not None:
                self._scheduler.update_schedule(sync_schedule)
            else:
                self._db.set_setting(SYNC_SCHEDULE, sync_schedule.strip())
        if global_sync_enabled is not None:
            self._db.set_setting(GLOBAL_SYNC_ENABLED, "true" if global_sync_enabled else "false")
        if connection_timeout_minutes is not None:
            self._db.set_setting(CONNECTION_TIMEOUT_MINUTES, str(connection_timeout_minutes))

        logger.info("Settings updated")
        return self.get_settings()
