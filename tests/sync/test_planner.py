"""Tests for the diff planner."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from sftpmirror.sync.control import JobControl
from sftpmirror.sync.planner import MTIME_TOLERANCE, DiffPlanner, needs_transfer
from sftpmirror.sync.types import JobInterrupted

MTIME = 1_700_000_000


def _local(path: Path, content: bytes, mtime: int = MTIME) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.utime(path, (mtime, mtime))


class TestNeedsTransfer:
    """Tests for needs_transfer function."""

    def _attrs(self, size: int, mtime: int) -> MagicMock:
        return MagicMock(st_size=size, st_mtime=mtime)

    def test_missing_local(self, tmp_path: Path) -> None:
        """Should transfer when the local file does not exist."""
        assert needs_transfer(self._attrs(10, MTIME), str(tmp_path / "missing"))

    def test_same_size_and_mtime(self, tmp_path: Path) -> None:
        """Should skip identical files."""
        _local(tmp_path / "f", b"x" * 10)
        assert not needs_transfer(self._attrs(10, MTIME), str(tmp_path / "f"))

    def test_size_differs(self, tmp_path: Path) -> None:
        """Should transfer when sizes differ."""
        _local(tmp_path / "f", b"x" * 10)
        assert needs_transfer(self._attrs(11, MTIME), str(tmp_path / "f"))

    def test_mtime_within_tolerance(self, tmp_path: Path) -> None:
        """Should ignore mtime drift up to the tolerance."""
        _local(tmp_path / "f", b"x" * 10)
        assert not needs_transfer(self._attrs(10, MTIME + MTIME_TOLERANCE), str(tmp_path / "f"))
        assert not needs_transfer(self._attrs(10, MTIME - MTIME_TOLERANCE), str(tmp_path / "f"))

    def test_mtime_beyond_tolerance(self, tmp_path: Path) -> None:
        """Should transfer when mtimes differ by more than the tolerance."""
        _local(tmp_path / "f", b"x" * 10)
        assert needs_transfer(self._attrs(10, MTIME + MTIME_TOLERANCE + 1), str(tmp_path / "f"))

    def test_fractional_local_mtime_floored(self, tmp_path: Path) -> None:
        """Should floor the local mtime before comparing."""
        path = tmp_path / "f"
        _local(path, b"x")
        os.utime(path, (MTIME + 0.9, MTIME + 0.9))
        assert not needs_transfer(self._attrs(1, MTIME - 2), str(path))


class TestFolderPlanning:
    """Tests for folder traversal."""

    def test_plans_missing_files(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should plan every remote file absent locally, in name order."""
        make_remote("/data/b.txt", b"b" * 200, MTIME)
        make_remote("/data/a.txt", b"a" * 100, MTIME)

        plan = DiffPlanner(sftp).plan("folder", "/data", str(mirror_root / "data"))

        assert [t.remote_path for t in plan.files] == ["/data/a.txt", "/data/b.txt"]
        assert plan.total_bytes == 300
        assert plan.failed_items == []
        assert plan.files[0].local_path == str(mirror_root / "data" / "a.txt")
        assert plan.files[0].mtime == MTIME

    def test_clean_tree_is_empty(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should produce an empty plan when local matches remote."""
        make_remote("/data/a.txt", b"a" * 100, MTIME)
        _local(mirror_root / "data" / "a.txt", b"a" * 100)

        plan = DiffPlanner(sftp).plan("folder", "/data", str(mirror_root / "data"))

        assert plan.is_empty
        assert plan.total_bytes == 0

    def test_depth_first_order(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should list a directory's files before descending, subdirs in name order."""
        make_remote("/data/a.txt", b"1", MTIME)
        make_remote("/data/m/x.txt", b"2", MTIME)
        make_remote("/data/z.txt", b"3", MTIME)
        make_remote("/data/b/y.txt", b"4", MTIME)
        make_remote("/data/b/deep/w.txt", b"5", MTIME)

        plan = DiffPlanner(sftp).plan("folder", "/data", str(mirror_root))

        assert [t.remote_path for t in plan.files] == [
            "/data/a.txt",
            "/data/z.txt",
            "/data/b/y.txt",
            "/data/b/deep/w.txt",
            "/data/m/x.txt",
        ]
        assert plan.files[3].local_path == str(mirror_root / "b" / "deep" / "w.txt")

    def test_skips_ds_store(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should never mirror .DS_Store."""
        make_remote("/data/.DS_Store", b"junk", MTIME)
        make_remote("/data/a.txt", b"a", MTIME)

        plan = DiffPlanner(sftp).plan("folder", "/data", str(mirror_root))

        assert [t.remote_path for t in plan.files] == ["/data/a.txt"]

    def test_skips_symlinks(
        self,
        sftp: Any,
        make_remote: Callable[..., Path],
        remote_root: Path,
        mirror_root: Path,
    ) -> None:
        """Should skip entries that are neither regular files nor directories."""
        target = make_remote("/data/a.txt", b"a", MTIME)
        os.symlink(target, remote_root / "data" / "link.txt")

        plan = DiffPlanner(sftp).plan("folder", "/data", str(mirror_root))

        assert [t.remote_path for t in plan.files] == ["/data/a.txt"]

    def test_listing_failure_recorded(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should record a failed listing and keep planning the rest."""
        make_remote("/data/locked/secret.txt", b"s", MTIME)
        make_remote("/data/open/a.txt", b"a", MTIME)
        sftp.denied.add("/data/locked")

        plan = DiffPlanner(sftp).plan("folder", "/data", str(mirror_root))

        assert [t.remote_path for t in plan.files] == ["/data/open/a.txt"]
        assert len(plan.failed_items) == 1
        assert plan.failed_items[0].path == "/data/locked"
        assert plan.failed_items[0].error.startswith("Scan failed: ")

    def test_missing_root_recorded(self, sftp: Any, mirror_root: Path) -> None:
        """Should record a missing remote root as a failure, not raise."""
        plan = DiffPlanner(sftp).plan("folder", "/nope", str(mirror_root))

        assert plan.is_empty
        assert [f.path for f in plan.failed_items] == ["/nope"]

    def test_checkpoint_per_directory(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should call the checkpoint once per listed directory."""
        make_remote("/data/a/1.txt", b"1", MTIME)
        make_remote("/data/b/2.txt", b"2", MTIME)
        checkpoint = MagicMock()

        DiffPlanner(sftp, checkpoint=checkpoint).plan("folder", "/data", str(mirror_root))

        assert checkpoint.call_count == 3

    def test_interruption_propagates(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should stop planning when the checkpoint raises."""
        make_remote("/data/a.txt", b"a", MTIME)
        control = JobControl("job1")
        control.request_cancel()

        with pytest.raises(JobInterrupted):
            DiffPlanner(sftp, checkpoint=control.checkpoint).plan(
                "folder", "/data", str(mirror_root)
            )
        assert sftp.listed == []


class TestFilePlanning:
    """Tests for single-file items."""

    def test_plans_single_file(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should stat the remote file once and plan it when dirty."""
        make_remote("/data/report.csv", b"x" * 42, MTIME)

        plan = DiffPlanner(sftp).plan("file", "/data/report.csv", str(mirror_root / "r.csv"))

        assert len(plan.files) == 1
        assert plan.files[0].local_path == str(mirror_root / "r.csv")
        assert plan.total_bytes == 42

    def test_clean_single_file(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should plan nothing for an up-to-date file."""
        make_remote("/data/report.csv", b"x" * 42, MTIME)
        _local(mirror_root / "r.csv", b"x" * 42)

        plan = DiffPlanner(sftp).plan("file", "/data/report.csv", str(mirror_root / "r.csv"))

        assert plan.is_empty

    def test_missing_remote_file(self, sftp: Any, mirror_root: Path) -> None:
        """Should record a failure when the remote file is missing."""
        plan = DiffPlanner(sftp).plan("file", "/data/gone.csv", str(mirror_root / "g.csv"))

        assert plan.is_empty
        assert plan.failed_items[0].path == "/data/gone.csv"

    def test_remote_directory_for_file_item(
        self, sftp: Any, make_remote: Callable[..., Path], mirror_root: Path
    ) -> None:
        """Should refuse to plan a directory as a file."""
        make_remote("/data/sub/a.txt", b"a", MTIME)

        plan = DiffPlanner(sftp).plan("file", "/data/sub", str(mirror_root / "sub"))

        assert plan.is_empty
        assert plan.failed_items[0].error == "Remote path is a directory"
