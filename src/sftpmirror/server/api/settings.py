"""Runtime settings API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sftpmirror.server.api.deps import get_scheduler, get_service, to_http_error
from sftpmirror.server.scheduler import SyncScheduler
from sftpmirror.server.schemas import (
    SettingsResponse,
    SettingsUpdateRequest,
    settings_to_response,
)
from sftpmirror.sync.service import MirrorService
from sftpmirror.sync.types import MirrorError

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=SettingsResponse)
def get_settings(
    service: MirrorService = Depends(get_service),
    scheduler: SyncScheduler | None = Depends(get_scheduler),
) -> SettingsResponse:
    """Get the schedule, global enable flag and connection timeout."""
    next_run = scheduler.next_run_time() if scheduler else None
    return settings_to_response(service.get_settings(), next_run)


@router.post("", response_model=SettingsResponse)
def update_settings(
    request: SettingsUpdateRequest,
    service: MirrorService = Depends(get_service),
    scheduler: SyncScheduler | None = Depends(get_scheduler),
) -> SettingsResponse:
    """Update settings; a new schedule is applied immediately."""
    try:
        settings = service.update_settings(
            sync_schedule=request.sync_schedule,
            global_sync_enabled=request.global_sync_enabled,
            connection_timeout_minutes=request.connection_timeout_minutes,
        )
    except MirrorError as e:
        raise to_http_error(e) from e
    next_run = scheduler.next_run_time() if scheduler else None
    return settings_to_response(settings, next_run)
