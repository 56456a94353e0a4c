"""HTTP client for the sftpmirror service API.

This module provides:
- MirrorClient: thin httpx wrapper used by the CLI
- APIError and its subclasses mapped from HTTP status codes

Control operations must reach the serving process, which owns the live job
controllers, so the CLI goes through the API rather than the database.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://127.0.0.1:8000"


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(APIError):
    """Resource not found."""


class ConflictError(APIError):
    """Resource already exists."""


def _detail(response: httpx.Response, fallback: str) -> str:
    try:
        detail = response.json().get("detail", fallback)
    except ValueError:
        return fallback
    return detail if isinstance(detail, str) else str(detail)


class MirrorClient:
    """HTTP client for the sftpmirror API."""

    def __init__(
        self,
        server_url: str = DEFAULT_SERVER_URL,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the service.
            timeout: Request timeout in seconds.
            http_client: Preconfigured client (tests pass a TestClient).
        """
        self._server_url = server_url.rstrip("/")
        self._client = http_client or httpx.Client(base_url=self._server_url, timeout=timeout)

    @property
    def server_url(self) -> str:
        """Base URL the client talks to."""
        return self._server_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> MirrorClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> Any:
        """Raise on error statuses and return the decoded body."""
        if response.status_code == 404:
            raise NotFoundError(_detail(response, "Resource not found"), 404)
        if response.status_code == 409:
            raise ConflictError(_detail(response, "Conflict"), 409)
        if response.status_code >= 400:
            raise APIError(_detail(response, "Unknown error"), response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the service is reachable and healthy."""
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Sync items ===

    def list_items(self) -> list[dict[str, Any]]:
        return self._handle_response(self._client.get("/api/sync"))

    def create_item(
        self, remote_path: str, local_path: str, kind: str = "folder", active: bool = True
    ) -> dict[str, Any]:
        return self._handle_response(
            self._client.post(
                "/api/sync",
                json={
                    "remote_path": remote_path,
                    "local_path": local_path,
                    "kind": kind,
                    "active": active,
                },
            )
        )

    def toggle_item(self, item_id: int, active: bool) -> dict[str, Any]:
        return self._handle_response(
            self._client.post(f"/api/sync/{item_id}/toggle", json={"active": active})
        )

    def delete_item(self, item_id: int, delete_files: bool = False) -> None:
        self._handle_response(
            self._client.delete(
                f"/api/sync/{item_id}",
                params={"delete_files": str(delete_files).lower()},
            )
        )

    def check_item(self, item_id: int) -> dict[str, Any]:
        """Run a read-only diff check for an item."""
        return self._handle_response(self._client.get(f"/api/sync/{item_id}/status"))

    # === Jobs ===

    def list_jobs(
        self, page: int = 1, limit: int = 25, search: str | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        return self._handle_response(self._client.get("/api/jobs", params=params))

    def run_item(self, item_id: int, kind: str = "sync") -> str:
        """Queue a manual run.

        Returns:
            The new job ID.
        """
        data = self._handle_response(
            self._client.post("/api/jobs/manual", json={"sync_item_id": item_id, "kind": kind})
        )
        return data["job_id"]

    def control_job(self, job_id: str, action: str) -> dict[str, Any]:
        """Send cancel, pause or resume for a job."""
        return self._handle_response(self._client.post(f"/api/jobs/{job_id}/{action}"))

    def set_priority(self, job_id: str, priority: int | None = None) -> dict[str, Any]:
        """Set a job's priority; None moves it ahead of every other job."""
        return self._handle_response(
            self._client.post(f"/api/jobs/{job_id}/priority", json={"priority": priority})
        )

    def pause_all(self) -> int:
        return self._handle_response(self._client.post("/api/jobs/pause-all"))["count"]

    def resume_all(self) -> int:
        return self._handle_response(self._client.post("/api/jobs/resume-all"))["count"]

    # === Settings ===

    def get_settings(self) -> dict[str, Any]:
        return self._handle_response(self._client.get("/api/settings"))

    def update_settings(self, **values: Any) -> dict[str, Any]:
        body = {key: value for key, value in values.items() if value is not None}
        return self._handle_response(self._client.post("/api/settings", json=body))
