"""Tests for CLI commands and the HTTP client they use."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner
from fastapi.testclient import TestClient

from sftpmirror.cli import cli
from sftpmirror.cli.common import format_size
from sftpmirror.client import APIError, ConflictError, MirrorClient, NotFoundError
from sftpmirror.server.app import create_app
from sftpmirror.server.database import Database
from sftpmirror.sync.control import ControllerRegistry
from sftpmirror.sync.domain import JobStatus
from sftpmirror.sync.service import MirrorService
from sftpmirror.sync.types import RemoteConnectionError
from sftpmirror.sync.worker import SyncWorker

MTIME = 1_700_000_000


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def registry() -> ControllerRegistry:
    return ControllerRegistry()


@pytest.fixture
def service(db: Database, provider: Any, registry: ControllerRegistry) -> MirrorService:
    return MirrorService(db, provider, registry=registry)


@pytest.fixture
def client(service: MirrorService) -> MirrorClient:
    """API client wired to an in-process app."""
    return MirrorClient(http_client=TestClient(create_app(service)))


@pytest.fixture
def invoke(runner: CliRunner, client: MirrorClient) -> Callable[..., Any]:
    """Run a CLI command against the in-process app."""

    def _invoke(*args: str, input: str | None = None) -> Any:
        return runner.invoke(cli, list(args), obj={"client": client}, input=input)

    return _invoke


@pytest.fixture
def item_id(service: MirrorService, mirror_root: Path) -> int:
    return service.create_sync_item("/data", str(mirror_root / "data"), "folder", active=False).id


class TestItemCommands:
    """Tests for 'sftpmirror item' commands."""

    def test_add_and_list(self, invoke: Callable[..., Any], mirror_root: Path) -> None:
        """Should register an item and show it with its queued job."""
        result = invoke("item", "add", "/data", str(mirror_root / "data"))
        assert result.exit_code == 0
        assert "Added item 1: /data ->" in result.output

        result = invoke("item", "list")
        assert result.exit_code == 0
        assert "[1] /data" in result.output
        assert "queued" in result.output

    def test_list_empty(self, invoke: Callable[..., Any]) -> None:
        """Should say when there is nothing to list."""
        result = invoke("item", "list")
        assert result.exit_code == 0
        assert "No sync items." in result.output

    def test_add_duplicate_fails(self, invoke: Callable[..., Any], mirror_root: Path) -> None:
        """Should exit 1 with the server's message on a duplicate."""
        invoke("item", "add", "/data", str(mirror_root / "data"))
        result = invoke("item", "add", "/data", str(mirror_root / "data"))

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "already mirrored" in result.output

    def test_toggle(self, invoke: Callable[..., Any], db: Database, item_id: int) -> None:
        """Should activate an item."""
        result = invoke("item", "toggle", str(item_id), "--on")
        assert result.exit_code == 0
        assert "activated" in result.output
        item = db.get_sync_item(item_id)
        assert item is not None and item.active is True

    def test_remove_requires_confirmation(
        self, invoke: Callable[..., Any], db: Database, item_id: int
    ) -> None:
        """Should abort without confirmation."""
        result = invoke("item", "remove", str(item_id), input="n\n")
        assert result.exit_code != 0
        item = db.get_sync_item(item_id)
        assert item is not None and item.status != "deleted"

    def test_remove(self, invoke: Callable[..., Any], db: Database, item_id: int) -> None:
        """Should soft-delete with --yes."""
        result = invoke("item", "remove", str(item_id), "--yes")
        assert result.exit_code == 0
        item = db.get_sync_item(item_id)
        assert item is not None and item.status == "deleted"

    def test_remove_missing(self, invoke: Callable[..., Any]) -> None:
        """Should report an unknown item."""
        result = invoke("item", "remove", "99", "--yes")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestJobCommands:
    """Tests for 'sftpmirror job' commands."""

    def test_run_and_list(
        self,
        invoke: Callable[..., Any],
        db: Database,
        provider: Any,
        registry: ControllerRegistry,
        make_remote: Callable[..., Path],
        item_id: int,
    ) -> None:
        """Should queue a manual run and list it after the worker ran it."""
        make_remote("/data/a.txt", b"a" * 2048, MTIME)

        result = invoke("job", "run", str(item_id))
        assert result.exit_code == 0
        assert result.output.startswith("Queued job ")

        SyncWorker(db, provider, registry=registry).tick()

        result = invoke("job", "list")
        assert result.exit_code == 0
        assert "1 job(s), 0 active, 0 paused" in result.output
        assert "completed" in result.output
        assert "2.0 KB/2.0 KB" in result.output
        assert "Sync completed successfully" in result.output

    def test_cancel(self, invoke: Callable[..., Any], service: MirrorService, item_id: int) -> None:
        """Should cancel a queued job."""
        job_id = service.run_now(item_id)

        result = invoke("job", "cancel", job_id)

        assert result.exit_code == 0
        assert f"Job {job_id}: cancelled" in result.output

    def test_pause_not_running(
        self, invoke: Callable[..., Any], service: MirrorService, item_id: int
    ) -> None:
        """Should explain when there is nothing to pause."""
        job_id = service.run_now(item_id)

        result = invoke("job", "pause", job_id)

        assert result.exit_code == 0
        assert "nothing to pause (status queued)" in result.output

    def test_unknown_job(self, invoke: Callable[..., Any]) -> None:
        """Should exit 1 for an unknown job."""
        result = invoke("job", "resume", "deadbeef")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_prioritize(
        self, invoke: Callable[..., Any], service: MirrorService, item_id: int
    ) -> None:
        """Should move a job above every other job."""
        first = service.enqueue(item_id)
        service.run_now(item_id)

        result = invoke("job", "prioritize", first)

        assert result.exit_code == 0
        assert "priority 11 (queued)" in result.output

    def test_pause_all_resume_all(
        self, invoke: Callable[..., Any], db: Database, service: MirrorService, item_id: int
    ) -> None:
        """Should pause and resume every queued job."""
        service.enqueue(item_id)
        service.enqueue(item_id)

        assert "Paused 2 job(s)" in invoke("job", "pause-all").output
        assert db.count_jobs([JobStatus.PAUSED]) == 2
        assert "Resumed 2 job(s)" in invoke("job", "resume-all").output
        assert db.count_jobs([JobStatus.QUEUED]) == 2


class TestStatusCommand:
    """Tests for 'sftpmirror status' command."""

    def test_healthy(self, invoke: Callable[..., Any]) -> None:
        """Should report a reachable service."""
        result = invoke("status")
        assert result.exit_code == 0
        assert "is healthy" in result.output

    def test_unreachable(self, runner: CliRunner) -> None:
        """Should exit 1 when the service does not answer."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        http = httpx.Client(base_url="http://test", transport=httpx.MockTransport(handler))
        client = MirrorClient("http://test", http_client=http)

        result = runner.invoke(cli, ["status"], obj={"client": client})

        assert result.exit_code == 1
        assert "Error: service at http://test is not reachable" in result.output


class TestCheckCommand:
    """Tests for 'sftpmirror check' command."""

    def test_outdated(
        self, invoke: Callable[..., Any], make_remote: Callable[..., Path], item_id: int
    ) -> None:
        """Should list the files a sync would transfer."""
        make_remote("/data/a.txt", b"a" * 100, MTIME)
        make_remote("/data/b.txt", b"b" * 200, MTIME)

        result = invoke("check", str(item_id))

        assert result.exit_code == 0
        assert "Outdated: 2 file(s), 300 B" in result.output
        assert "/data/b.txt" in result.output

    def test_up_to_date(self, invoke: Callable[..., Any], remote_root: Path, item_id: int) -> None:
        """Should report an empty diff as up to date."""
        (remote_root / "data").mkdir()
        result = invoke("check", str(item_id))
        assert result.exit_code == 0
        assert "Up to date" in result.output

    def test_error(self, invoke: Callable[..., Any], provider: Any, item_id: int) -> None:
        """Should exit 1 when the remote is unreachable."""
        provider.error = RemoteConnectionError("no route to host")

        result = invoke("check", str(item_id))

        assert result.exit_code == 1
        assert "no route to host" in result.output


class TestSettingsCommands:
    """Tests for 'sftpmirror settings' commands."""

    def test_show(self, invoke: Callable[..., Any]) -> None:
        """Should print the defaults."""
        result = invoke("settings", "show")
        assert result.exit_code == 0
        assert "0 * * * *" in result.output
        assert "enabled" in result.output
        assert "60 min" in result.output

    def test_set(self, invoke: Callable[..., Any], db: Database) -> None:
        """Should update only the given settings."""
        result = invoke("settings", "set", "--disable", "--timeout", "5")

        assert result.exit_code == 0
        assert db.is_global_sync_enabled() is False
        assert db.get_connection_timeout_minutes() == 5
        assert db.get_setting("sync_schedule") == "0 * * * *"

    def test_set_invalid_schedule(self, invoke: Callable[..., Any]) -> None:
        """Should exit 1 on an invalid cron expression."""
        result = invoke("settings", "set", "--schedule", "often")
        assert result.exit_code == 1
        assert "Invalid cron expression" in result.output


class TestFormatSize:
    """Tests for format_size function."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [(None, "-"), (0, "0 B"), (512, "512 B"), (2048, "2.0 KB"), (5 * 1024**3, "5.0 GB")],
    )
    def test_units(self, size: int | None, expected: str) -> None:
        """Should pick the largest fitting unit."""
        assert format_size(size) == expected


class TestMirrorClient:
    """Tests for MirrorClient error mapping."""

    @staticmethod
    def _client(status: int, body: Any = None) -> MirrorClient:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=body)

        http = httpx.Client(base_url="http://test", transport=httpx.MockTransport(handler))
        return MirrorClient(http_client=http)

    def test_not_found(self) -> None:
        """Should map 404 to NotFoundError with the server's detail."""
        with pytest.raises(NotFoundError, match="Job x not found"):
            self._client(404, {"detail": "Job x not found"}).control_job("x", "cancel")

    def test_conflict(self) -> None:
        """Should map 409 to ConflictError."""
        with pytest.raises(ConflictError):
            self._client(409, {"detail": "dup"}).create_item("/a", "/b")

    def test_other_error(self) -> None:
        """Should carry the status code of other errors."""
        with pytest.raises(APIError) as exc_info:
            self._client(500, {"detail": "boom"}).list_items()
        assert exc_info.value.status_code == 500

    def test_health_check_unreachable(self) -> None:
        """Should report an unreachable server as unhealthy."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        http = httpx.Client(base_url="http://test", transport=httpx.MockTransport(handler))
        assert MirrorClient(http_client=http).health_check() is False
