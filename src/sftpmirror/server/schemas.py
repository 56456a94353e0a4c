"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from sftpmirror.server.models import Job, SyncItem
from sftpmirror.sync.types import DiffStatus

# === Sync item schemas ===


class SyncItemCreateRequest(BaseModel):
    """Request body for sync item creation."""

    remote_path: str
    local_path: str
    kind: str = "folder"
    active: bool = True


class SyncItemToggleRequest(BaseModel):
    """Request body for toggling an item."""

    active: bool


class JobSummary(BaseModel):
    """Open job shown next to a sync item."""

    id: str
    status: str
    priority: int
    processed_bytes: int
    total_bytes: int
    current_speed: float | None
    eta_seconds: int | None


class SyncItemResponse(BaseModel):
    """Sync item data in responses."""

    id: int
    remote_path: str
    local_path: str
    kind: str
    status: str
    active: bool
    last_synced_at: str | None
    error_message: str | None
    job: JobSummary | None = None


class DiffStatusResponse(BaseModel):
    """Result of a read-only diff check."""

    status: str
    diff_count: int | None = None
    diff_size: int | None = None
    diff_files: list[str] | None = None
    error: str | None = None


# === Job schemas ===


class JobResponse(BaseModel):
    """Job data in responses."""

    id: str
    kind: str
    sync_item_id: int | None
    remote_path: str | None = None
    status: str
    priority: int
    created_at: str
    started_at: str | None
    completed_at: str | None
    log: str | None
    processed_bytes: int
    total_bytes: int
    current_speed: float | None
    eta_seconds: int | None
    failed_items: list[dict[str, Any]]


class JobListResponse(BaseModel):
    """One page of jobs."""

    jobs: list[JobResponse]
    total: int
    page: int
    limit: int
    pages: int
    active: int
    paused: int


class ManualJobRequest(BaseModel):
    """Request body for a manual run."""

    sync_item_id: int
    kind: str = "sync"


class ManualJobResponse(BaseModel):
    """Response for a manual run."""

    job_id: str


class PriorityRequest(BaseModel):
    """Request body for a priority change.

    Omitting ``priority`` moves the job ahead of every other job.
    """

    priority: int | None = None


class ControlResponse(BaseModel):
    """Result of a control operation."""

    success: bool
    status: str | None = None
    priority: int | None = None


class BulkControlResponse(BaseModel):
    """Result of pause-all / resume-all."""

    count: int


# === Settings schemas ===


class SettingsResponse(BaseModel):
    """Runtime settings."""

    sync_schedule: str
    global_sync_enabled: bool
    connection_timeout_minutes: int
    next_run_time: str | None = None


class SettingsUpdateRequest(BaseModel):
    """Request body for a settings update; omitted fields are unchanged."""

    sync_schedule: str | None = None
    global_sync_enabled: bool | None = None
    connection_timeout_minutes: int | None = Field(default=None, ge=1)


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    worker_running: bool = False
    scheduler_running: bool = False


# === Converters ===


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def job_to_summary(job: Job) -> JobSummary:
    """Convert Job to the compact summary shown with items."""
    return JobSummary(
        id=job.id,
        status=job.status,
        priority=job.priority,
        processed_bytes=job.processed_bytes,
        total_bytes=job.total_bytes,
        current_speed=job.current_speed,
        eta_seconds=job.eta_seconds,
    )


def sync_item_to_response(item: SyncItem, job: Job | None = None) -> SyncItemResponse:
    """Convert SyncItem to response model."""
    return SyncItemResponse(
        id=item.id,
        remote_path=item.remote_path,
        local_path=item.local_path,
        kind=item.kind,
        status=item.status,
        active=item.active,
        last_synced_at=_iso(item.last_synced_at),
        error_message=item.error_message,
        job=job_to_summary(job) if job is not None else None,
    )


def job_to_response(job: Job, remote_path: str | None = None) -> JobResponse:
    """Convert Job to response model.

    ``remote_path`` is passed explicitly because jobs are detached from their
    session and the item relationship is only loaded by listings.
    """
    return JobResponse(
        id=job.id,
        kind=job.kind,
        sync_item_id=job.sync_item_id,
        remote_path=remote_path,
        status=job.status,
        priority=job.priority,
        created_at=job.created_at.isoformat(),
        started_at=_iso(job.started_at),
        completed_at=_iso(job.completed_at),
        log=job.log,
        processed_bytes=job.processed_bytes,
        total_bytes=job.total_bytes,
        current_speed=job.current_speed,
        eta_seconds=job.eta_seconds,
        failed_items=list(job.failed_items or []),
    )


def diff_to_response(diff: DiffStatus) -> DiffStatusResponse:
    """Convert DiffStatus to response model."""
    return DiffStatusResponse(**diff.to_dict())


def settings_to_response(
    settings: dict[str, str], next_run_time: str | None = None
) -> SettingsResponse:
    """Convert the raw settings map to response model."""
    return SettingsResponse(
        sync_schedule=settings["sync_schedule"],
        global_sync_enabled=settings["global_sync_enabled"].lower() == "true",
        connection_timeout_minutes=int(settings["connection_timeout_minutes"]),
        next_run_time=next_run_time,
    )
