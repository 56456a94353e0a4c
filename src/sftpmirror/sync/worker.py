"""Single-slot worker loop.

This module provides:
- SyncWorker: dequeues the best queued job and runs it end-to-end

Exactly one job executes at a time. Each tick claims the queued job with the
highest priority (oldest first on ties), runs it synchronously and writes its
terminal status before the next tick. A non-blocking lock guards tick() so
overlapping invocations never both dequeue.

Run outline:
    load item -> preconditions -> register control -> open session
    -> checkpoint -> plan -> transfer file by file (checkpointed)
    -> final checkpoint -> terminal status -> deregister control
"""

from __future__ import annotations

import logging
import os
import threading
from typing import TYPE_CHECKING

from sftpmirror.core.config import DEFAULT_CHUNK_SIZE, DEFAULT_TICK_INTERVAL
from sftpmirror.sync.control import ControllerRegistry, JobControl
from sftpmirror.sync.domain import (
    ACTIVE_STATUSES,
    MANUAL_PRIORITY,
    ItemStatus,
    JobKind,
    JobStatus,
)
from sftpmirror.sync.planner import DiffPlanner
from sftpmirror.sync.progress import PERSIST_INTERVAL, ProgressSnapshot, ProgressTracker
from sftpmirror.sync.transfer import FileTransfer
from sftpmirror.sync.types import (
    Interruption,
    ItemNotFoundError,
    JobInterrupted,
    LocalIntegrityError,
    MirrorError,
)

if TYPE_CHECKING:
    from sftpmirror.server.database import Database
    from sftpmirror.server.models import Job, SyncItem
    from sftpmirror.sync.connection import ConnectionProvider

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Interrupted by restart"
IN_FLIGHT_STATUSES = (JobStatus.RUNNING, JobStatus.PAUSING, JobStatus.CANCELLING)


class SyncWorker:
    """Serialized executor for queued jobs.

    Usage:
        worker = SyncWorker(db, provider)
        worker.start()       # background thread, ticks every second
        ...
        worker.stop()

    Tests drive it synchronously with ``worker.tick()``.
    """

    def __init__(
        self,
        db: Database,
        provider: ConnectionProvider,
        registry: ControllerRegistry | None = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        progress_interval: float = PERSIST_INTERVAL,
    ) -> None:
        """Initialize the worker.

        Args:
            db: Job store.
            provider: Opens SFTP sessions.
            registry: Controller registry shared with the control API.
            tick_interval: Seconds between ticks when idle.
            chunk_size: Bytes per read while streaming.
            progress_interval: Minimum seconds between progress writes.
        """
        self._db = db
        self._provider = provider
        self._registry = registry if registry is not None else ControllerRegistry()
        self._tick_interval = tick_interval
        self._chunk_size = chunk_size
        self._progress_interval = progress_interval

        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def registry(self) -> ControllerRegistry:
        """Controllers of the job this worker is executing."""
        return self._registry

    @property
    def is_running(self) -> bool:
        """Check if the background loop is alive."""
        return self._thread is not None and self._thread.is_alive()

    # === Loop ===

    def start(self) -> None:
        """Start the background loop."""
        if self.is_running:
            return  # Already running

        self.recover_orphans()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="sftpmirror-worker", daemon=True
        )
        self._thread.start()
        logger.info("Worker started (tick every %.1fs)", self._tick_interval)

    def stop(self, timeout: float | None = 10.0) -> None:
        """Stop the loop after the current job finishes (or ``timeout``)."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Worker still busy after %.1fs, leaving it to finish", timeout or 0)
            self._thread = None
            logger.info("Worker stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Worker tick failed")
            self._stop_event.wait(self._tick_interval)

    def tick(self) -> str | None:
        """Claim and run the next queued job, if the slot is free.

        Returns:
            ID of the job that ran, or None if nothing ran.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Tick skipped: previous tick still running")
            return None
        try:
            if len(self._registry) > 0:
                return None
            if self._db.count_jobs(IN_FLIGHT_STATUSES) > 0:
                logger.debug("Tick skipped: a run without a live controller is still in flight")
                return None
            job = self._db.claim_next_job()
            if job is None:
                return None
            self.run_job(job)
            return job.id
        finally:
            self._tick_lock.release()

    def recover_orphans(self) -> int:
        """Settle runs left in flight by a previous process.

        Running and pausing rows become paused so they can be resumed;
        cancelling rows become cancelled. Call only while no run is live.

        Returns:
            Number of jobs settled.
        """
        if len(self._registry) > 0:
            return 0
        count = self._db.bulk_transition(
            JobStatus.RUNNING, JobStatus.PAUSED, log=INTERRUPTED_MESSAGE
        )
        count += self._db.bulk_transition(
            JobStatus.PAUSING, JobStatus.PAUSED, log=INTERRUPTED_MESSAGE
        )
        count += self._db.bulk_transition(
            JobStatus.CANCELLING, JobStatus.CANCELLED, log="Cancelled by user"
        )
        if count:
            logger.warning("Settled %d job(s) interrupted by a restart", count)
        return count

    def run_until_idle(self, max_jobs: int = 1000) -> list[str]:
        """Run ticks until the queue is empty.

        Returns:
            IDs of the jobs that ran, in order.
        """
        ran: list[str] = []
        while len(ran) < max_jobs:
            job_id = self.tick()
            if job_id is None:
                break
            ran.append(job_id)
        return ran

    # === Job execution ===

    def run_job(self, job: Job) -> JobStatus | None:
        """Execute a claimed (running) job and write its terminal status.

        Returns:
            The terminal status written, or None if another writer won.
        """
        logger.info("Starting job %s (%s, priority %d)", job.id, job.kind, job.priority)

        try:
            item = self._load_item(job)
            if job.kind == JobKind.SYNC.value:
                self._check_preconditions(job, item)
        except MirrorError as e:
            # Local-integrity and inactive failures leave the item's own status alone
            return self._fail(job, str(e))

        with self._registry.scope(job.id) as control:
            try:
                tracker = self._execute(job, item, control)
            except JobInterrupted as e:
                return self._finish_interrupted(job, e.reason, control)
            except MirrorError as e:
                return self._fail(job, str(e), item_id=self._item_id_for_errors(job))
            except Exception as e:
                logger.exception("Job %s crashed", job.id)
                return self._fail(job, str(e), item_id=self._item_id_for_errors(job))

            return self._finish_completed(job, item, tracker)

    def _load_item(self, job: Job) -> SyncItem:
        if job.sync_item_id is None:
            raise ItemNotFoundError("Sync item not found")
        item = self._db.get_sync_item(job.sync_item_id)
        if item is None:
            raise ItemNotFoundError("Sync item not found")
        return item

    def _check_preconditions(self, job: Job, item: SyncItem) -> None:
        if not item.active and job.priority < MANUAL_PRIORITY:
            raise MirrorError("Sync item is inactive")

        if item.status == ItemStatus.SYNCED.value and not os.path.exists(item.local_path):
            message = "Local file/folder missing. Sync disabled due to local deletion."
            self._db.mark_sync_item_local_missing(item.id, message)
            logger.warning("Sync item %d: local path %s vanished", item.id, item.local_path)
            raise LocalIntegrityError(message)

    def _execute(self, job: Job, item: SyncItem, control: JobControl) -> ProgressTracker:
        self._db.reset_job_progress(job.id)
        tracker = ProgressTracker(
            persist=lambda snapshot: self._persist_progress(job.id, snapshot),
            interval=self._progress_interval,
        )

        with self._provider.session(abort_check=control.checkpoint) as sftp:
            control.checkpoint()

            planner = DiffPlanner(sftp, checkpoint=control.checkpoint)
            plan = planner.plan(item.kind, item.remote_path, item.local_path)
            for failure in plan.failed_items:
                tracker.record_failure(failure)

            self._db.set_job_total(job.id, plan.total_bytes)
            tracker.start(plan.total_bytes)

            if job.kind == JobKind.CHECK.value:
                tracker.finish()
                self._db.set_job_log(
                    job.id,
                    f"Check found {len(plan.files)} file(s) to transfer ({plan.total_bytes} bytes)",
                )
                return tracker

            transfer = FileTransfer(
                sftp, tracker, checkpoint=control.checkpoint, chunk_size=self._chunk_size
            )
            try:
                for task in plan.files:
                    control.checkpoint()
                    transfer.run(task)
                control.checkpoint()
            finally:
                tracker.finish()

        return tracker

    def _persist_progress(self, job_id: str, snapshot: ProgressSnapshot) -> None:
        self._db.update_job_progress(
            job_id,
            processed_bytes=snapshot.processed_bytes,
            current_speed=snapshot.current_speed,
            eta_seconds=snapshot.eta_seconds,
            failed_items=[item.to_dict() for item in snapshot.failed_items],
        )

    def _item_id_for_errors(self, job: Job) -> int | None:
        # Check jobs never touch the item
        return job.sync_item_id if job.kind == JobKind.SYNC.value else None

    # === Terminal states ===

    def _finish_completed(
        self, job: Job, item: SyncItem, tracker: ProgressTracker
    ) -> JobStatus | None:
        failures = len(tracker.failed_items)
        if job.kind == JobKind.CHECK.value:
            log = None
        elif failures:
            log = f"Sync completed with {failures} failed item(s)"
        else:
            log = "Sync completed successfully"

        fields = {"log": log} if log is not None else {}
        if not self._db.transition_job(
            job.id, JobStatus.COMPLETED, expected=ACTIVE_STATUSES, **fields
        ):
            logger.warning("Job %s finished but was no longer active", job.id)
            return None

        if job.kind == JobKind.SYNC.value:
            self._db.mark_sync_item_synced(item.id)
        logger.info("Job %s completed (%d failed item(s))", job.id, failures)
        return JobStatus.COMPLETED

    def _finish_interrupted(
        self, job: Job, reason: Interruption, control: JobControl
    ) -> JobStatus | None:
        if reason == Interruption.CANCEL:
            status = JobStatus.CANCELLED
            log = "Cancelled by user"
        else:
            status = JobStatus.PAUSED
            log = control.pause_message

        if not self._db.transition_job(job.id, status, expected=ACTIVE_STATUSES, log=log):
            logger.warning("Job %s interrupted but was no longer active", job.id)
            return None
        logger.info("Job %s %s", job.id, status.value)
        return status

    def _fail(self, job: Job, message: str, item_id: int | None = None) -> JobStatus | None:
        logger.error("Job %s failed: %s", job.id, message)
        if not self._db.transition_job(
            job.id, JobStatus.FAILED, expected=ACTIVE_STATUSES, log=message
        ):
            return None
        if item_id is not None:
            self._db.mark_sync_item_error(item_id, message)
        return JobStatus.FAILED
