"""Health check API route."""

from __future__ import annotations

from fastapi import APIRouter, Request

from sftpmirror.server.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request) -> HealthResponse:
    """Check server health and background loops."""
    worker = request.app.state.worker
    scheduler = request.app.state.scheduler
    return HealthResponse(
        status="ok",
        worker_running=worker is not None and worker.is_running,
        scheduler_running=scheduler is not None and scheduler.is_running,
    )
