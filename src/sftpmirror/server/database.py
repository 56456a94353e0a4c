"""Job store using SQLAlchemy with SQLite.

This module provides:
- Sync item registration, soft deletion and status updates
- Job creation, dequeueing and state transitions
- Progress persistence for running jobs
- Runtime settings (schedule, global enable flag, connection timeout)

Every method opens its own short session and commits before returning.
Status changes go through conditional UPDATEs so concurrent control calls
and the worker never overwrite each other's transitions.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import String, case, cast, create_engine, func, or_, select, update
from sqlalchemy.orm import Session, contains_eager

from sftpmirror.server.models import Base, Job, Setting, SyncItem
from sftpmirror.sync.domain import (
    ItemStatus,
    JobKind,
    JobStatus,
    TERMINAL_STATUSES,
    can_transition,
    sources_for,
)

if TYPE_CHECKING:
    from sqlalchemy import Engine

# Setting keys
SYNC_SCHEDULE = "sync_schedule"
GLOBAL_SYNC_ENABLED = "global_sync_enabled"
CONNECTION_TIMEOUT_MINUTES = "connection_timeout_minutes"

DEFAULT_SETTINGS: dict[str, str] = {
    SYNC_SCHEDULE: "0 * * * *",
    GLOBAL_SYNC_ENABLED: "true",
    CONNECTION_TIMEOUT_MINUTES: "60",
}


def _now() -> datetime:
    return datetime.now(UTC)


def _status_values(statuses: Iterable[JobStatus | str]) -> list[str]:
    return [JobStatus(status).value for status in statuses]


class Database:
    """SQLAlchemy database for sync items, jobs and settings.

    Uses SQLite with WAL mode so control-plane reads stay responsive while
    the worker writes progress.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Worker thread, scheduler thread and HTTP threadpool share the engine
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")

        Base.metadata.create_all(self._engine)

    @property
    def path(self) -> Path:
        """Database file location."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine)

    # === Settings ===

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        """Get a setting value, falling back to the built-in default.

        Args:
            key: Setting key.
            default: Value returned when neither a row nor a built-in default exists.

        Returns:
            The stored value, the built-in default, or ``default``.
        """
        with self._session() as session:
            setting = session.get(Setting, key)
            if setting is not None:
                return setting.value
        return DEFAULT_SETTINGS.get(key, default)

    def set_setting(self, key: str, value: str) -> None:
        """Insert or replace a setting."""
        with self._session() as session:
            session.merge(Setting(key=key, value=value))
            session.commit()

    def get_settings(self) -> dict[str, str]:
        """Get all settings merged over the built-in defaults."""
        settings = dict(DEFAULT_SETTINGS)
        with self._session() as session:
            for setting in session.execute(select(Setting)).scalars():
                settings[setting.key] = setting.value
        return settings

    def is_global_sync_enabled(self) -> bool:
        """Read the global enable flag (never cached)."""
        return (self.get_setting(GLOBAL_SYNC_ENABLED) or "true").lower() == "true"

    def get_connection_timeout_minutes(self) -> int:
        """Read the connection timeout setting, in minutes."""
        return int(self.get_setting(CONNECTION_TIMEOUT_MINUTES) or "60")

    # === Sync item operations ===

    def create_sync_item(
        self,
        remote_path: str,
        local_path: str,
        kind: str,
        active: bool = True,
    ) -> SyncItem:
        """Register a new sync item.

        Args:
            remote_path: Remote file or folder path.
            local_path: Local destination path.
            kind: "file" or "folder".
            active: Whether scheduled runs include this item.

        Returns:
            Created SyncItem.

        Raises:
            IntegrityError: If the (remote_path, local_path) pair already exists.
        """
        with self._session() as session:
            item = SyncItem(
                remote_path=remote_path,
                local_path=local_path,
                kind=kind,
                active=active,
                status=ItemStatus.PENDING.value,
            )
            session.add(item)
            session.commit()
            session.refresh(item)
            session.expunge(item)
            return item

    def get_sync_item(self, item_id: int) -> SyncItem | None:
        """Get a sync item by ID (including soft-deleted ones)."""
        with self._session() as session:
            item = session.get(SyncItem, item_id)
            if item:
                session.expunge(item)
            return item

    def get_sync_item_by_paths(self, remote_path: str, local_path: str) -> SyncItem | None:
        """Get a sync item by its unique path pair."""
        with self._session() as session:
            stmt = select(SyncItem).where(
                SyncItem.remote_path == remote_path,
                SyncItem.local_path == local_path,
            )
            item = session.execute(stmt).scalar_one_or_none()
            if item:
                session.expunge(item)
            return item

    def list_sync_items(self, include_deleted: bool = False) -> list[SyncItem]:
        """List sync items ordered by ID."""
        with self._session() as session:
            stmt = select(SyncItem).order_by(SyncItem.id)
            if not include_deleted:
                stmt = stmt.where(SyncItem.status != ItemStatus.DELETED.value)
            items = list(session.execute(stmt).scalars().all())
            for item in items:
                session.expunge(item)
            return items

    def _update_sync_item(self, item_id: int, **values: Any) -> bool:
        with self._session() as session:
            result = session.execute(
                update(SyncItem)
                .where(SyncItem.id == item_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    def restore_sync_item(self, item_id: int) -> bool:
        """Bring a soft-deleted item back as pending and active."""
        return self._update_sync_item(
            item_id, status=ItemStatus.PENDING.value, active=True, error_message=None
        )

    def set_sync_item_active(self, item_id: int, active: bool) -> bool:
        """Toggle whether scheduled runs include an item."""
        return self._update_sync_item(item_id, active=active)

    def soft_delete_sync_item(self, item_id: int) -> bool:
        """Mark an item deleted and inactive; job history keeps referencing it."""
        return self._update_sync_item(item_id, status=ItemStatus.DELETED.value, active=False)

    def mark_sync_item_synced(self, item_id: int) -> bool:
        """Record a successful run."""
        return self._update_sync_item(
            item_id,
            status=ItemStatus.SYNCED.value,
            last_synced_at=_now(),
            error_message=None,
        )

    def mark_sync_item_error(self, item_id: int, message: str) -> bool:
        """Record a failed run."""
        return self._update_sync_item(item_id, status=ItemStatus.ERROR.value, error_message=message)

    def mark_sync_item_local_missing(self, item_id: int, message: str) -> bool:
        """Deactivate an item whose local copy vanished after a successful sync."""
        return self._update_sync_item(
            item_id,
            status=ItemStatus.LOCAL_MISSING.value,
            active=False,
            error_message=message,
        )

    def clear_sync_item_error(self, item_id: int) -> bool:
        """Clear the error message shown for an item."""
        return self._update_sync_item(item_id, error_message=None)

    # === Job operations ===

    def create_job(
        self,
        sync_item_id: int | None,
        kind: JobKind | str = JobKind.SYNC,
        priority: int = 0,
        created_at: datetime | None = None,
    ) -> Job:
        """Insert a queued job.

        Args:
            sync_item_id: Target sync item.
            kind: "sync" or "check".
            priority: Higher runs first.
            created_at: Override the creation timestamp (FIFO tie-break).

        Returns:
            Created Job.
        """
        with self._session() as session:
            job = Job(
                kind=JobKind(kind).value,
                sync_item_id=sync_item_id,
                status=JobStatus.QUEUED.value,
                priority=priority,
                created_at=created_at or _now(),
                failed_items=[],
            )
            session.add(job)
            session.commit()
            session.refresh(job)
            session.expunge(job)
            return job

    def enqueue_active_items(self, priority: int = 0) -> list[str]:
        """Queue one sync job per active sync item in a single transaction.

        Returns:
            IDs of the created jobs.
        """
        now = _now()
        with self._session() as session:
            stmt = select(SyncItem.id).where(SyncItem.active.is_(True)).order_by(SyncItem.id)
            item_ids = list(session.execute(stmt).scalars().all())
            jobs = [
                Job(
                    kind=JobKind.SYNC.value,
                    sync_item_id=item_id,
                    status=JobStatus.QUEUED.value,
                    priority=priority,
                    created_at=now,
                    failed_items=[],
                )
                for item_id in item_ids
            ]
            session.add_all(jobs)
            session.flush()
            job_ids = [job.id for job in jobs]
            session.commit()
            return job_ids

    def get_job(self, job_id: str) -> Job | None:
        """Get a job by ID."""
        with self._session() as session:
            job = session.get(Job, job_id)
            if job:
                session.expunge(job)
            return job

    def get_job_status(self, job_id: str) -> JobStatus | None:
        """Get only the status of a job."""
        with self._session() as session:
            value = session.execute(
                select(Job.status).where(Job.id == job_id)
            ).scalar_one_or_none()
            return JobStatus(value) if value is not None else None

    def list_job_ids(
        self,
        statuses: Iterable[JobStatus | str],
        sync_item_id: int | None = None,
        exclude_id: str | None = None,
    ) -> list[str]:
        """List job IDs in the given statuses, oldest first."""
        with self._session() as session:
            stmt = select(Job.id).where(Job.status.in_(_status_values(statuses)))
            if sync_item_id is not None:
                stmt = stmt.where(Job.sync_item_id == sync_item_id)
            if exclude_id is not None:
                stmt = stmt.where(Job.id != exclude_id)
            stmt = stmt.order_by(Job.created_at)
            return list(session.execute(stmt).scalars().all())

    def list_jobs_for_items(
        self, statuses: Iterable[JobStatus | str]
    ) -> list[Job]:
        """List jobs in the given statuses that reference a sync item."""
        with self._session() as session:
            stmt = (
                select(Job)
                .where(Job.status.in_(_status_values(statuses)), Job.sync_item_id.is_not(None))
                .order_by(Job.priority.desc(), Job.created_at)
            )
            jobs = list(session.execute(stmt).scalars().all())
            for job in jobs:
                session.expunge(job)
            return jobs

    def list_jobs(
        self,
        page: int = 1,
        limit: int = 25,
        search: str | None = None,
    ) -> tuple[list[Job], int]:
        """List jobs, most recent first, with their sync item loaded.

        Args:
            page: 1-based page number.
            limit: Page size.
            search: Optional substring matched against status, kind, log,
                failed items and the item's remote path.

        Returns:
            Tuple of (jobs on this page, total matching jobs).
        """
        offset = (max(page, 1) - 1) * limit
        with self._session() as session:
            stmt = select(Job).outerjoin(SyncItem, Job.sync_item_id == SyncItem.id)
            count_stmt = select(func.count(Job.id)).select_from(Job).outerjoin(
                SyncItem, Job.sync_item_id == SyncItem.id
            )
            if search:
                term = f"%{search}%"
                condition = or_(
                    Job.status.like(term),
                    Job.kind.like(term),
                    Job.log.like(term),
                    cast(Job.failed_items, String).like(term),
                    SyncItem.remote_path.like(term),
                )
                stmt = stmt.where(condition)
                count_stmt = count_stmt.where(condition)

            stmt = (
                stmt.options(contains_eager(Job.sync_item))
                .order_by(func.coalesce(Job.started_at, Job.created_at).desc())
                .limit(limit)
                .offset(offset)
            )
            jobs = list(session.execute(stmt).unique().scalars().all())
            total = session.execute(count_stmt).scalar_one()
            session.expunge_all()
            return jobs, total

    def job_stats(self) -> dict[str, int]:
        """Count jobs that pause-all/resume-all would act on."""
        with self._session() as session:
            active = func.sum(
                case(
                    (
                        Job.status.in_(
                            _status_values(
                                [JobStatus.RUNNING, JobStatus.QUEUED, JobStatus.PAUSING]
                            )
                        ),
                        1,
                    ),
                    else_=0,
                )
            )
            paused = func.sum(
                case(
                    (Job.status.in_(_status_values([JobStatus.PAUSED, JobStatus.PAUSING])), 1),
                    else_=0,
                )
            )
            row = session.execute(select(active, paused)).one()
            return {"active": int(row[0] or 0), "paused": int(row[1] or 0)}

    def count_jobs(self, statuses: Iterable[JobStatus | str]) -> int:
        """Count jobs in the given statuses."""
        with self._session() as session:
            stmt = select(func.count(Job.id)).where(Job.status.in_(_status_values(statuses)))
            return int(session.execute(stmt).scalar_one())

    def max_priority(self) -> int:
        """Highest priority of any job (0 when there are none)."""
        with self._session() as session:
            value = session.execute(select(func.max(Job.priority))).scalar_one_or_none()
            return int(value or 0)

    def next_queued_job(self) -> Job | None:
        """Peek at the queued job the worker would pick next."""
        with self._session() as session:
            stmt = (
                select(Job)
                .where(Job.status == JobStatus.QUEUED.value)
                .order_by(Job.priority.desc(), Job.created_at.asc())
                .limit(1)
            )
            job = session.execute(stmt).scalar_one_or_none()
            if job:
                session.expunge(job)
            return job

    def claim_next_job(self) -> Job | None:
        """Atomically move the best queued job to running.

        Selection is priority descending, then created_at ascending. The
        claim is a conditional UPDATE, so a job cancelled or paused between
        select and update is not started.

        Returns:
            The claimed job (status running), or None if nothing is queued.
        """
        candidate = self.next_queued_job()
        if candidate is None:
            return None
        claimed = self.transition_job(
            candidate.id,
            JobStatus.RUNNING,
            expected=[JobStatus.QUEUED],
            started_at=_now(),
            completed_at=None,
            log="Running",
        )
        if not claimed:
            return None
        return self.get_job(candidate.id)

    def transition_job(
        self,
        job_id: str,
        new_status: JobStatus | str,
        expected: Iterable[JobStatus | str] | None = None,
        **fields: Any,
    ) -> bool:
        """Move a job to ``new_status`` if the transition table allows it.

        Args:
            job_id: Job ID.
            new_status: Target status.
            expected: Restrict the source statuses further (e.g. only from
                ``queued``). Sources outside the transition table are ignored.
            **fields: Extra columns to set in the same UPDATE.

        Returns:
            True if the job was transitioned, False if it was not in an
            allowed source status (no-op).
        """
        target = JobStatus(new_status)
        allowed = sources_for(target)
        if expected is not None:
            allowed = allowed & frozenset(JobStatus(status) for status in expected)
        if not allowed:
            return False

        values: dict[str, Any] = {"status": target.value, **fields}
        if target in TERMINAL_STATUSES and "completed_at" not in fields:
            values["completed_at"] = _now()

        with self._session() as session:
            result = session.execute(
                update(Job)
                .where(Job.id == job_id, Job.status.in_(_status_values(allowed)))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    def bulk_transition(
        self,
        from_status: JobStatus | str,
        new_status: JobStatus | str,
        log: str | None = None,
    ) -> int:
        """Move every job in ``from_status`` to ``new_status``.

        Returns:
            Number of jobs transitioned (0 if the transition is invalid).
        """
        source = JobStatus(from_status)
        target = JobStatus(new_status)
        if not can_transition(source, target):
            return 0
        values: dict[str, Any] = {"status": target.value}
        if log is not None:
            values["log"] = log
        if target in TERMINAL_STATUSES:
            values["completed_at"] = _now()
        with self._session() as session:
            result = session.execute(
                update(Job)
                .where(Job.status == source.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return int(result.rowcount)

    def _update_job(self, job_id: str, **values: Any) -> bool:
        with self._session() as session:
            result = session.execute(
                update(Job)
                .where(Job.id == job_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount == 1

    def set_job_priority(self, job_id: str, priority: int) -> bool:
        """Change a job's priority; takes effect at the next dequeue."""
        return self._update_job(job_id, priority=priority)

    def set_job_log(self, job_id: str, log: str) -> bool:
        """Set the job's latest log message."""
        return self._update_job(job_id, log=log)

    def reset_job_progress(self, job_id: str) -> bool:
        """Clear progress and failures at the start of a run."""
        return self._update_job(
            job_id,
            processed_bytes=0,
            total_bytes=0,
            current_speed=None,
            eta_seconds=None,
            failed_items=[],
        )

    def set_job_total(self, job_id: str, total_bytes: int) -> bool:
        """Fix the run's total once the plan is known."""
        return self._update_job(job_id, total_bytes=total_bytes)

    def update_job_progress(
        self,
        job_id: str,
        processed_bytes: int,
        current_speed: float | None,
        eta_seconds: int | None,
        failed_items: list[dict[str, str]] | None = None,
    ) -> bool:
        """Persist throughput for a running job."""
        values: dict[str, Any] = {
            "processed_bytes": processed_bytes,
            "current_speed": current_speed,
            "eta_seconds": eta_seconds,
        }
        if failed_items is not None:
            values["failed_items"] = failed_items
        return self._update_job(job_id, **values)
