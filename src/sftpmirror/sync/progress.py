"""Progress tracking for job runs.

This module provides:
- ProgressSnapshot: processed/total bytes, speed, ETA and failures
- ProgressTracker: accumulates bytes and throttles persistence

Persistence happens at most once per PERSIST_INTERVAL, plus two forced
writes: when the plan starts (0 / total) and when the run ends.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sftpmirror.sync.types import FailedItem

logger = logging.getLogger(__name__)

PERSIST_INTERVAL = 1.0  # seconds


@dataclass
class ProgressSnapshot:
    """Progress values as written to the job store."""

    processed_bytes: int
    total_bytes: int
    current_speed: float
    eta_seconds: int | None
    failed_items: list[FailedItem] = field(default_factory=list)

    @property
    def remaining_bytes(self) -> int:
        return max(self.total_bytes - self.processed_bytes, 0)


class ProgressTracker:
    """Derives throughput and ETA for one run.

    Usage:
        tracker = ProgressTracker(persist=save)
        tracker.start(plan.total_bytes)
        tracker.advance(len(chunk))
        tracker.finish()
    """

    def __init__(
        self,
        persist: Callable[[ProgressSnapshot], None],
        interval: float = PERSIST_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the tracker.

        Args:
            persist: Writes a snapshot to the job store.
            interval: Minimum seconds between unforced writes.
            clock: Monotonic clock (injectable for tests).
        """
        self._persist = persist
        self._interval = interval
        self._clock = clock
        self._start_time = clock()
        self._last_persist: float | None = None
        self.total_bytes = 0
        self.processed_bytes = 0
        self.failed_items: list[FailedItem] = []

    def start(self, total_bytes: int) -> None:
        """Fix the run total and write the initial 0 / total snapshot."""
        self.total_bytes = total_bytes
        self.processed_bytes = 0
        self._start_time = self._clock()
        self.persist(force=True)

    def advance(self, nbytes: int) -> None:
        """Account for a received chunk; persists when the interval has elapsed."""
        # Clamped: a remote file may grow after it was planned
        self.processed_bytes = min(self.processed_bytes + nbytes, self.total_bytes)
        self.persist()

    def record_failure(self, item: FailedItem) -> None:
        """Append a per-entry or per-file failure."""
        logger.warning("Failed %s: %s", item.path, item.error)
        self.failed_items.append(item)

    def finish(self) -> None:
        """Write final values regardless of throttling."""
        self.persist(force=True)

    def snapshot(self) -> ProgressSnapshot:
        """Compute speed and ETA from the bytes processed so far."""
        elapsed = self._clock() - self._start_time
        speed = self.processed_bytes / elapsed if elapsed > 0 else 0.0
        remaining = max(self.total_bytes - self.processed_bytes, 0)
        eta = math.ceil(remaining / speed) if speed > 0 else None
        return ProgressSnapshot(
            processed_bytes=self.processed_bytes,
            total_bytes=self.total_bytes,
            current_speed=speed,
            eta_seconds=eta,
            failed_items=list(self.failed_items),
        )

    def persist(self, force: bool = False) -> bool:
        """Write a snapshot unless one was written less than ``interval`` ago.

        Returns:
            True if a snapshot was written.
        """
        now = self._clock()
        if (
            not force
            and self._last_persist is not None
            and now - self._last_persist < self._interval
        ):
            return False
        self._persist(self.snapshot())
        self._last_persist = now
        return True
