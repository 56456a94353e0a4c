"""Job queue API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from sftpmirror.server.api.deps import get_service, to_http_error
from sftpmirror.server.schemas import (
    BulkControlResponse,
    ControlResponse,
    JobListResponse,
    ManualJobRequest,
    ManualJobResponse,
    PriorityRequest,
    job_to_response,
)
from sftpmirror.sync.domain import JobKind
from sftpmirror.sync.service import MirrorService
from sftpmirror.sync.types import ConfigurationError, MirrorError

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _control_response(service: MirrorService, job_id: str, success: bool) -> ControlResponse:
    job = service.get_job(job_id)
    return ControlResponse(success=success, status=job.status, priority=job.priority)


@router.get("", response_model=JobListResponse)
def list_jobs(
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=200),
    search: str | None = None,
    service: MirrorService = Depends(get_service),
) -> JobListResponse:
    """List jobs, most recent first."""
    result = service.list_jobs(page=page, limit=limit, search=search)
    return JobListResponse(
        jobs=[
            job_to_response(job, job.sync_item.remote_path if job.sync_item else None)
            for job in result.jobs
        ],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
        active=result.stats.get("active", 0),
        paused=result.stats.get("paused", 0),
    )


@router.post(
    "/manual",
    response_model=ManualJobResponse,
    status_code=status.HTTP_201_CREATED,
)
def run_manual(
    request: ManualJobRequest,
    service: MirrorService = Depends(get_service),
) -> ManualJobResponse:
    """Queue a manual sync (or diff check) ahead of scheduled runs."""
    try:
        if request.kind == JobKind.SYNC.value:
            job_id = service.run_now(request.sync_item_id)
        elif request.kind == JobKind.CHECK.value:
            job_id = service.enqueue(request.sync_item_id, kind=JobKind.CHECK)
        else:
            raise ConfigurationError(f"Invalid job kind: {request.kind!r}")
    except MirrorError as e:
        raise to_http_error(e) from e
    return ManualJobResponse(job_id=job_id)


@router.post("/pause-all", response_model=BulkControlResponse)
def pause_all(service: MirrorService = Depends(get_service)) -> BulkControlResponse:
    """Pause every running and queued job."""
    return BulkControlResponse(count=service.pause_all())


@router.post("/resume-all", response_model=BulkControlResponse)
def resume_all(service: MirrorService = Depends(get_service)) -> BulkControlResponse:
    """Requeue every paused job."""
    return BulkControlResponse(count=service.resume_all())


@router.post("/{job_id}/priority", response_model=ControlResponse)
def set_priority(
    job_id: str,
    request: PriorityRequest | None = None,
    service: MirrorService = Depends(get_service),
) -> ControlResponse:
    """Change a job's priority, preempting lower-priority running jobs."""
    try:
        if request is None or request.priority is None:
            service.prioritize(job_id)
            success = True
        else:
            success = service.set_priority(job_id, request.priority)
        return _control_response(service, job_id, success)
    except MirrorError as e:
        raise to_http_error(e) from e


@router.post("/{job_id}/cancel", response_model=ControlResponse)
def cancel_job(
    job_id: str,
    service: MirrorService = Depends(get_service),
) -> ControlResponse:
    """Cancel a job."""
    try:
        return _control_response(service, job_id, service.cancel(job_id))
    except MirrorError as e:
        raise to_http_error(e) from e


@router.post("/{job_id}/pause", response_model=ControlResponse)
def pause_job(
    job_id: str,
    service: MirrorService = Depends(get_service),
) -> ControlResponse:
    """Pause a running job at its next checkpoint."""
    try:
        return _control_response(service, job_id, service.pause(job_id))
    except MirrorError as e:
        raise to_http_error(e) from e


@router.post("/{job_id}/resume", response_model=ControlResponse)
def resume_job(
    job_id: str,
    service: MirrorService = Depends(get_service),
) -> ControlResponse:
    """Resume a paused job."""
    try:
        return _control_response(service, job_id, service.resume(job_id))
    except MirrorError as e:
        raise to_http_error(e) from e
