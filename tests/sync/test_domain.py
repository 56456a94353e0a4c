"""Tests for the job state machine."""

from __future__ import annotations

import pytest

from sftpmirror.sync.domain import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    JobStatus,
    can_transition,
    is_terminal,
    sources_for,
)


class TestTransitions:
    """Tests for VALID_TRANSITIONS and can_transition."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (JobStatus.QUEUED, JobStatus.RUNNING),
            (JobStatus.QUEUED, JobStatus.PAUSED),
            (JobStatus.QUEUED, JobStatus.CANCELLED),
            (JobStatus.RUNNING, JobStatus.PAUSING),
            (JobStatus.RUNNING, JobStatus.CANCELLING),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
            (JobStatus.PAUSING, JobStatus.PAUSED),
            (JobStatus.PAUSING, JobStatus.RUNNING),
            (JobStatus.PAUSED, JobStatus.QUEUED),
            (JobStatus.PAUSED, JobStatus.CANCELLED),
            (JobStatus.CANCELLING, JobStatus.CANCELLED),
        ],
    )
    def test_valid(self, current: JobStatus, new: JobStatus) -> None:
        """Should allow lifecycle transitions."""
        assert can_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (JobStatus.QUEUED, JobStatus.COMPLETED),
            (JobStatus.PAUSED, JobStatus.RUNNING),
            (JobStatus.CANCELLING, JobStatus.PAUSED),
            (JobStatus.CANCELLING, JobStatus.RUNNING),
            (JobStatus.COMPLETED, JobStatus.QUEUED),
            (JobStatus.CANCELLED, JobStatus.QUEUED),
            (JobStatus.FAILED, JobStatus.RUNNING),
        ],
    )
    def test_invalid(self, current: JobStatus, new: JobStatus) -> None:
        """Should reject transitions outside the table."""
        assert not can_transition(current, new)

    def test_accepts_strings(self) -> None:
        """Should accept raw status values as stored in the database."""
        assert can_transition("queued", "running")
        assert not can_transition("completed", "running")

    def test_every_status_has_entry(self) -> None:
        """Should define transitions for every status."""
        assert set(VALID_TRANSITIONS) == set(JobStatus)


class TestStatusSets:
    """Tests for derived status sets."""

    def test_terminal_statuses(self) -> None:
        """Should treat cancelled, completed and failed as terminal."""
        assert TERMINAL_STATUSES == {
            JobStatus.CANCELLED,
            JobStatus.COMPLETED,
            JobStatus.FAILED,
        }
        assert is_terminal("failed")
        assert not is_terminal(JobStatus.PAUSED)

    def test_active_statuses_are_not_terminal(self) -> None:
        """Should keep executing statuses disjoint from terminal ones."""
        assert not ACTIVE_STATUSES & TERMINAL_STATUSES

    def test_sources_for_running(self) -> None:
        """Should reach running only from queued or a withdrawn pause."""
        assert sources_for(JobStatus.RUNNING) == {JobStatus.QUEUED, JobStatus.PAUSING}

    def test_sources_for_queued(self) -> None:
        """Should requeue only paused jobs."""
        assert sources_for(JobStatus.QUEUED) == {JobStatus.PAUSED}
