"""Domain modules for mirror business rules.

This package centralizes the job lifecycle rules:
- jobs: job/item enums and the job state machine

Architecture:
    domain/ contains pure business logic without external dependencies.
    Persistence and execution stay in server/ and sync/.
"""

from sftpmirror.sync.domain.jobs import (
    ACTIVE_STATUSES,
    MANUAL_PRIORITY,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    ItemKind,
    ItemStatus,
    JobKind,
    JobStatus,
    can_transition,
    is_terminal,
    sources_for,
)

__all__ = [
    "ACTIVE_STATUSES",
    "MANUAL_PRIORITY",
    "TERMINAL_STATUSES",
    "VALID_TRANSITIONS",
    "ItemKind",
    "ItemStatus",
    "JobKind",
    "JobStatus",
    "can_transition",
    "is_terminal",
    "sources_for",
]
