"""FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from sftpmirror.server.scheduler import SyncScheduler
from sftpmirror.sync.service import MirrorService
from sftpmirror.sync.types import (
    ConfigurationError,
    DuplicateItemError,
    ItemNotFoundError,
    JobNotFoundError,
    MirrorError,
)


def get_service(request: Request) -> MirrorService:
    """Get mirror service from app state."""
    service: MirrorService = request.app.state.service
    return service


def get_scheduler(request: Request) -> SyncScheduler | None:
    """Get scheduler from app state (may be None)."""
    scheduler: SyncScheduler | None = request.app.state.scheduler
    return scheduler


def to_http_error(error: MirrorError) -> HTTPException:
    """Map a service error to its HTTP status."""
    if isinstance(error, (ItemNotFoundError, JobNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, DuplicateItemError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, ConfigurationError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=str(error))
