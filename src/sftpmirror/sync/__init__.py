"""Mirror engine: planning, transfer and job control.

Architecture:
    SyncScheduler / MirrorService → Job Store → SyncWorker → DiffPlanner → FileTransfer

Components:
- **DiffPlanner**: compares a remote tree with its local mirror
- **FileTransfer**: streams one remote file to disk, checkpointed per chunk
- **ProgressTracker**: throughput, ETA and throttled progress writes
- **JobControl / ControllerRegistry**: cooperative cancel and pause
- **SFTPConnectionProvider**: authenticated paramiko sessions with retry

SyncWorker (sync.worker) and MirrorService (sync.service) depend on the job
store and are imported from their modules directly.
"""

from sftpmirror.sync.connection import (
    ConnectionProvider,
    SFTPConnectionProvider,
    load_private_key,
)
from sftpmirror.sync.control import ControllerRegistry, JobControl
from sftpmirror.sync.planner import MTIME_TOLERANCE, DiffPlanner, needs_transfer
from sftpmirror.sync.progress import ProgressSnapshot, ProgressTracker
from sftpmirror.sync.retry import retry_with_backoff
from sftpmirror.sync.transfer import FileTransfer
from sftpmirror.sync.types import (
    ConfigurationError,
    DiffStatus,
    DuplicateItemError,
    FailedItem,
    FileTask,
    Interruption,
    ItemNotFoundError,
    JobInterrupted,
    JobNotFoundError,
    LocalIntegrityError,
    MirrorError,
    Plan,
    PlanningError,
    RemoteConnectionError,
    TransferError,
)

__all__ = [
    # Connection
    "ConnectionProvider",
    "SFTPConnectionProvider",
    "load_private_key",
    # Control
    "ControllerRegistry",
    "JobControl",
    # Planning and transfer
    "MTIME_TOLERANCE",
    "DiffPlanner",
    "FileTransfer",
    "needs_transfer",
    # Progress
    "ProgressSnapshot",
    "ProgressTracker",
    # Retry
    "retry_with_backoff",
    # Types and errors
    "ConfigurationError",
    "DiffStatus",
    "DuplicateItemError",
    "FailedItem",
    "FileTask",
    "Interruption",
    "ItemNotFoundError",
    "JobInterrupted",
    "JobNotFoundError",
    "LocalIntegrityError",
    "MirrorError",
    "Plan",
    "PlanningError",
    "RemoteConnectionError",
    "TransferError",
]
