"""Job state machine.

States:
    QUEUED -> RUNNING -> COMPLETED
       ^        |     -> FAILED
       |        |     -> PAUSING -> PAUSED ---> QUEUED (resume)
       |        |     -> CANCELLING -> CANCELLED
       +--------+---------------------- PAUSED

QUEUED <-> PAUSED is the only revisitable cycle. PAUSING -> RUNNING is allowed
when a pending pause is withdrawn before the worker observed it.

All state transitions are validated against VALID_TRANSITIONS. Callers treat
an invalid transition as a no-op.
"""

from __future__ import annotations

from enum import Enum


class JobKind(str, Enum):
    """What a job does when the worker runs it."""

    SYNC = "sync"
    CHECK = "check"


class JobStatus(str, Enum):
    """Lifecycle status of a job."""

    QUEUED = "queued"
    RUNNING = "running"
    PAUSING = "pausing"
    PAUSED = "paused"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"


class ItemKind(str, Enum):
    """Whether a sync item mirrors a single file or a folder tree."""

    FILE = "file"
    FOLDER = "folder"


class ItemStatus(str, Enum):
    """Status of a sync item."""

    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"
    LOCAL_MISSING = "local_missing"
    DELETED = "deleted"


# Valid state transitions
VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.PAUSED, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {
            JobStatus.PAUSING,
            JobStatus.PAUSED,
            JobStatus.CANCELLING,
            JobStatus.CANCELLED,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
        }
    ),
    JobStatus.PAUSING: frozenset(
        {
            JobStatus.RUNNING,
            JobStatus.PAUSED,
            JobStatus.CANCELLING,
            JobStatus.CANCELLED,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
        }
    ),
    JobStatus.PAUSED: frozenset({JobStatus.QUEUED, JobStatus.CANCELLED}),
    JobStatus.CANCELLING: frozenset(
        {JobStatus.CANCELLED, JobStatus.COMPLETED, JobStatus.FAILED}
    ),
    JobStatus.CANCELLED: frozenset(),  # Terminal
    JobStatus.COMPLETED: frozenset(),  # Terminal
    JobStatus.FAILED: frozenset(),  # Terminal
}

# Statuses in which a worker may be executing the job
ACTIVE_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.RUNNING, JobStatus.PAUSING, JobStatus.CANCELLING}
)

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Priority given to manual runs; inactive items still run at this priority
MANUAL_PRIORITY = 10


def can_transition(current: JobStatus | str, new: JobStatus | str) -> bool:
    """Check whether ``current -> new`` is a valid transition."""
    return JobStatus(new) in VALID_TRANSITIONS[JobStatus(current)]


def sources_for(new: JobStatus) -> frozenset[JobStatus]:
    """Return every status from which ``new`` can be reached."""
    return frozenset(
        status for status, targets in VALID_TRANSITIONS.items() if new in targets
    )


def is_terminal(status: JobStatus | str) -> bool:
    """Check if a status is terminal."""
    return JobStatus(status) in TERMINAL_STATUSES
