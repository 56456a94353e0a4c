"""Shared types and dataclasses for mirror runs.

This module provides:
- MirrorError and its subclasses: the error taxonomy of the engine
- JobInterrupted: control-flow signal for cancel/pause
- FailedItem, FileTask, Plan: diff planning results
- DiffStatus: result of a read-only diff check
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class MirrorError(Exception):
    """Base exception for mirror errors."""


class ConfigurationError(MirrorError):
    """Missing or invalid configuration (connection parameters, schedule)."""


class RemoteConnectionError(MirrorError):
    """Failed to open an SFTP session."""


class PlanningError(MirrorError):
    """Failed to stat or list one remote entry."""


class TransferError(MirrorError):
    """Failed to transfer one file."""


class LocalIntegrityError(MirrorError):
    """A previously synced local path has vanished."""


class ItemNotFoundError(MirrorError):
    """Sync item does not exist."""


class JobNotFoundError(MirrorError):
    """Job does not exist."""


class DuplicateItemError(MirrorError):
    """A live sync item already covers this remote/local pair."""


class Interruption(str, Enum):
    """Kind of cooperative interruption requested for a running job."""

    CANCEL = "cancel"
    PAUSE = "pause"


class JobInterrupted(Exception):
    """Raised at a checkpoint when the job must stop.

    Not a MirrorError: interruption is control flow and must never be
    recorded as a failure.
    """

    def __init__(self, reason: Interruption) -> None:
        self.reason = reason
        super().__init__(f"Job interrupted ({reason.value})")


@dataclass
class FailedItem:
    """One per-entry or per-file failure recorded on a job."""

    path: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class FileTask:
    """A remote file that differs from its local copy."""

    remote_path: str
    local_path: str
    size: int
    mtime: int | None = None
    atime: int | None = None


@dataclass
class Plan:
    """Transfer plan produced by the diff planner."""

    files: list[FileTask] = field(default_factory=list)
    total_bytes: int = 0
    failed_items: list[FailedItem] = field(default_factory=list)

    def add(self, task: FileTask) -> None:
        """Append a file task and account for its size."""
        self.files.append(task)
        self.total_bytes += task.size

    @property
    def is_empty(self) -> bool:
        """Check if nothing needs transferring."""
        return not self.files


@dataclass
class DiffStatus:
    """Result of a dry-run diff check for one sync item.

    Attributes:
        status: "synced", "outdated" or "error".
        diff_count: Number of files that differ (0 when synced).
        diff_size: Bytes that would be transferred.
        diff_files: Remote paths that differ.
        error: Error message, or the first scan failure when nothing else differs.
    """

    status: str
    diff_count: int | None = None
    diff_size: int | None = None
    diff_files: list[str] | None = None
    error: str | None = None

    @classmethod
    def from_plan(cls, plan: Plan) -> DiffStatus:
        """Summarize a plan; scan failures with nothing to transfer count as an error."""
        error = None
        if plan.is_empty and plan.failed_items:
            first = plan.failed_items[0]
            error = f"{first.path}: {first.error}"
            if len(plan.failed_items) > 1:
                error += f" (and {len(plan.failed_items) - 1} more)"
        if error is not None:
            status = "error"
        else:
            status = "synced" if plan.is_empty else "outdated"
        return cls(
            status=status,
            diff_count=len(plan.files),
            diff_size=plan.total_bytes,
            diff_files=[task.remote_path for task in plan.files],
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}
