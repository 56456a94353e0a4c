"""Tests for progress tracking."""

from __future__ import annotations

from sftpmirror.sync.progress import ProgressSnapshot, ProgressTracker
from sftpmirror.sync.types import FailedItem


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _tracker(clock: FakeClock, interval: float = 1.0) -> tuple[ProgressTracker, list[ProgressSnapshot]]:
    writes: list[ProgressSnapshot] = []
    return ProgressTracker(persist=writes.append, interval=interval, clock=clock), writes


class TestProgressTracker:
    """Tests for ProgressTracker class."""

    def test_start_forces_write(self) -> None:
        """Should write 0 / total as soon as the plan is known."""
        clock = FakeClock()
        tracker, writes = _tracker(clock)

        tracker.start(300)

        assert len(writes) == 1
        assert writes[0].processed_bytes == 0
        assert writes[0].total_bytes == 300
        assert writes[0].eta_seconds is None

    def test_throttles_writes(self) -> None:
        """Should write at most once per interval."""
        clock = FakeClock()
        tracker, writes = _tracker(clock)
        tracker.start(100)

        clock.now += 0.2
        tracker.advance(10)
        clock.now += 0.2
        tracker.advance(10)
        assert len(writes) == 1

        clock.now += 1.0
        tracker.advance(10)
        assert len(writes) == 2
        assert writes[-1].processed_bytes == 30

    def test_finish_forces_write(self) -> None:
        """Should write final values regardless of throttling."""
        clock = FakeClock()
        tracker, writes = _tracker(clock)
        tracker.start(100)
        tracker.advance(50)

        tracker.finish()

        assert writes[-1].processed_bytes == 50
        assert len(writes) == 2

    def test_speed_and_eta(self) -> None:
        """Should derive speed from elapsed time and ETA from remaining bytes."""
        clock = FakeClock()
        tracker, _ = _tracker(clock)
        tracker.start(1000)

        clock.now += 2.0
        tracker.advance(300)
        snapshot = tracker.snapshot()

        assert snapshot.current_speed == 150.0
        assert snapshot.eta_seconds == 5  # ceil(700 / 150)
        assert snapshot.remaining_bytes == 700

    def test_processed_clamped_to_total(self) -> None:
        """Should never report more than the planned total."""
        clock = FakeClock()
        tracker, _ = _tracker(clock)
        tracker.start(10)

        tracker.advance(8)
        tracker.advance(8)

        assert tracker.processed_bytes == 10

    def test_processed_is_monotonic(self) -> None:
        """Should only ever grow within a run."""
        clock = FakeClock()
        tracker, writes = _tracker(clock, interval=0.0)
        tracker.start(100)
        for _ in range(5):
            clock.now += 0.1
            tracker.advance(7)

        values = [w.processed_bytes for w in writes]
        assert values == sorted(values)

    def test_failures_in_snapshot(self) -> None:
        """Should carry recorded failures in each snapshot."""
        clock = FakeClock()
        tracker, writes = _tracker(clock)
        tracker.start(10)

        tracker.record_failure(FailedItem(path="/data/x", error="Permission denied"))
        tracker.finish()

        assert writes[-1].failed_items == [FailedItem(path="/data/x", error="Permission denied")]
