"""Cooperative cancellation for running jobs.

This module provides:
- JobControl: cancel/pause token for one job run
- ControllerRegistry: process-local lookup of the tokens of in-flight jobs

A token exists only while the worker executes its job: ``registry.scope()``
registers it on entry and removes it on exit, whatever the outcome. Control
operations write the flags; the run polls them at checkpoints (before
planning, per scanned directory, before each file, on every received chunk
and at run end). Interruption latency is therefore bounded by the transfer
chunk size.

A persisted running/pausing/cancelling job without a registered token is
orphaned (typically after a restart) and is handled without the graceful path.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sftpmirror.sync.types import Interruption, JobInterrupted

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class JobControl:
    """Cancel/pause flags for one job run.

    Cancellation wins over pause when both are set.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._lock = threading.Lock()
        self._cancel = False
        self._pause = False
        self._pause_message = "Paused by user"

    @property
    def cancel_requested(self) -> bool:
        with self._lock:
            return self._cancel

    @property
    def pause_requested(self) -> bool:
        with self._lock:
            return self._pause

    def request_cancel(self) -> None:
        """Ask the run to stop and end as cancelled."""
        with self._lock:
            self._cancel = True
        logger.debug("Cancel requested for job %s", self.job_id)

    @property
    def pause_message(self) -> str:
        """Log line written when the run ends paused."""
        with self._lock:
            return self._pause_message

    def request_pause(self, message: str = "Paused by user") -> None:
        """Ask the run to stop and end as paused."""
        with self._lock:
            self._pause = True
            self._pause_message = message
        logger.debug("Pause requested for job %s", self.job_id)

    def withdraw_pause(self) -> bool:
        """Clear a pause request that the run has not observed yet.

        Returns:
            True if a pause request was pending.
        """
        with self._lock:
            pending = self._pause
            self._pause = False
            return pending

    def interruption(self) -> Interruption | None:
        """Return the pending interruption, if any."""
        with self._lock:
            if self._cancel:
                return Interruption.CANCEL
            if self._pause:
                return Interruption.PAUSE
            return None

    def checkpoint(self) -> None:
        """Raise JobInterrupted if the run must stop here."""
        reason = self.interruption()
        if reason is not None:
            raise JobInterrupted(reason)


class ControllerRegistry:
    """Thread-safe map of job ID to the JobControl of its live run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._controls: dict[str, JobControl] = {}

    def get(self, job_id: str) -> JobControl | None:
        """Get the live control for a job, or None if it is not executing."""
        with self._lock:
            return self._controls.get(job_id)

    def is_live(self, job_id: str) -> bool:
        """Check if a job has a live run in this process."""
        with self._lock:
            return job_id in self._controls

    @contextmanager
    def scope(self, job_id: str) -> Iterator[JobControl]:
        """Register a control for the duration of a run.

        Raises:
            RuntimeError: If the job already has a live control.
        """
        control = JobControl(job_id)
        with self._lock:
            if job_id in self._controls:
                raise RuntimeError(f"Job {job_id} already has a live controller")
            self._controls[job_id] = control
        try:
            yield control
        finally:
            with self._lock:
                self._controls.pop(job_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._controls)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._controls
