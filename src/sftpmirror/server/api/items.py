"""Sync item API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from sftpmirror.server.api.deps import get_service, to_http_error
from sftpmirror.server.schemas import (
    DiffStatusResponse,
    SyncItemCreateRequest,
    SyncItemResponse,
    SyncItemToggleRequest,
    diff_to_response,
    sync_item_to_response,
)
from sftpmirror.sync.service import MirrorService
from sftpmirror.sync.types import MirrorError

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("", response_model=list[SyncItemResponse])
def list_sync_items(
    service: MirrorService = Depends(get_service),
) -> list[SyncItemResponse]:
    """List sync items with their current job."""
    return [sync_item_to_response(o.item, o.job) for o in service.list_sync_items()]


@router.post(
    "",
    response_model=SyncItemResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_sync_item(
    request: SyncItemCreateRequest,
    service: MirrorService = Depends(get_service),
) -> SyncItemResponse:
    """Register a sync item and queue its first sync."""
    try:
        item = service.create_sync_item(
            remote_path=request.remote_path,
            local_path=request.local_path,
            kind=request.kind,
            active=request.active,
        )
    except MirrorError as e:
        raise to_http_error(e) from e
    return sync_item_to_response(item)


@router.delete("/{item_id}")
def delete_sync_item(
    item_id: int,
    delete_files: bool = False,
    service: MirrorService = Depends(get_service),
) -> Response:
    """Soft-delete a sync item, cancelling its open jobs."""
    try:
        service.delete_sync_item(item_id, delete_files=delete_files)
    except MirrorError as e:
        raise to_http_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{item_id}/toggle", response_model=SyncItemResponse)
def toggle_sync_item(
    item_id: int,
    request: SyncItemToggleRequest,
    service: MirrorService = Depends(get_service),
) -> SyncItemResponse:
    """Include or exclude an item from scheduled runs."""
    try:
        item = service.toggle_sync_item(item_id, request.active)
    except MirrorError as e:
        raise to_http_error(e) from e
    return sync_item_to_response(item)


@router.get("/{item_id}/status", response_model=DiffStatusResponse)
def check_sync_item(
    item_id: int,
    service: MirrorService = Depends(get_service),
) -> DiffStatusResponse:
    """Compare remote and local without transferring anything."""
    try:
        diff = service.check_diff(item_id)
    except MirrorError as e:
        raise to_http_error(e) from e
    return diff_to_response(diff)
