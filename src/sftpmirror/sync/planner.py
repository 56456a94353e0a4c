"""Diff planning between a remote tree and its local mirror.

A remote entry is dirty (included in the plan) when its local counterpart is
missing, the sizes differ, or the modification times differ by more than
MTIME_TOLERANCE seconds. Folder traversal is depth-first over an explicit
stack, so tree depth never grows the Python call stack.

Planning is best-effort: a failed stat or listing is recorded on the plan as
a FailedItem and the rest of the tree is still planned.
"""

from __future__ import annotations

import logging
import math
import os
import posixpath
import stat
from collections.abc import Callable
from typing import Any, Protocol

from sftpmirror.sync.domain import ItemKind
from sftpmirror.sync.types import FailedItem, FileTask, Plan, PlanningError

logger = logging.getLogger(__name__)

# Allowed mtime drift (filesystem and clock rounding), in seconds
MTIME_TOLERANCE = 2

# Remote names never mirrored
IGNORED_NAMES = frozenset({".DS_Store"})


class RemoteAttributes(Protocol):
    """Subset of paramiko.SFTPAttributes used for planning."""

    filename: str
    st_size: int | None
    st_mtime: int | None
    st_atime: int | None
    st_mode: int | None


class RemoteFS(Protocol):
    """Subset of paramiko.SFTPClient used for planning."""

    def stat(self, path: str) -> Any: ...

    def listdir_attr(self, path: str = ".") -> list[Any]: ...


def needs_transfer(remote: RemoteAttributes, local_path: str) -> bool:
    """Decide whether a remote file differs from its local copy."""
    try:
        local = os.stat(local_path)
    except OSError:
        # Missing, or unreadable: transfer to be safe
        return True

    if remote.st_size is None or local.st_size != remote.st_size:
        return True
    if remote.st_mtime is None:
        return True
    return abs(int(remote.st_mtime) - math.floor(local.st_mtime)) > MTIME_TOLERANCE


def _task(remote_path: str, local_path: str, attrs: RemoteAttributes) -> FileTask:
    return FileTask(
        remote_path=remote_path,
        local_path=local_path,
        size=int(attrs.st_size or 0),
        mtime=attrs.st_mtime,
        atime=attrs.st_atime,
    )


class DiffPlanner:
    """Builds transfer plans for sync items.

    Usage:
        planner = DiffPlanner(sftp, checkpoint=control.checkpoint)
        plan = planner.plan("folder", "/data", "/mnt/mirror/data")
    """

    def __init__(
        self,
        sftp: RemoteFS,
        checkpoint: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the planner.

        Args:
            sftp: Open SFTP client.
            checkpoint: Called before each remote directory is listed; may
                raise JobInterrupted.
        """
        self._sftp = sftp
        self._checkpoint = checkpoint

    def plan(self, kind: ItemKind | str, remote_path: str, local_path: str) -> Plan:
        """Compare ``remote_path`` with ``local_path`` and list dirty files."""
        plan = Plan()
        if ItemKind(kind) == ItemKind.FILE:
            self._plan_file(remote_path, local_path, plan)
        else:
            self._plan_folder(remote_path, local_path, plan)

        logger.info(
            "Planned %s: %d file(s), %d bytes, %d failure(s)",
            remote_path,
            len(plan.files),
            plan.total_bytes,
            len(plan.failed_items),
        )
        return plan

    def _stat(self, remote_path: str) -> Any:
        try:
            return self._sftp.stat(remote_path)
        except OSError as e:
            raise PlanningError(str(e)) from e

    def _list(self, remote_dir: str) -> list[Any]:
        try:
            return self._sftp.listdir_attr(remote_dir)
        except OSError as e:
            raise PlanningError(f"Scan failed: {e}") from e

    def _plan_file(self, remote_path: str, local_path: str, plan: Plan) -> None:
        try:
            attrs = self._stat(remote_path)
        except PlanningError as e:
            plan.failed_items.append(FailedItem(path=remote_path, error=str(e)))
            return

        if attrs.st_mode is not None and stat.S_ISDIR(attrs.st_mode):
            plan.failed_items.append(
                FailedItem(path=remote_path, error="Remote path is a directory")
            )
            return

        if needs_transfer(attrs, local_path):
            plan.add(_task(remote_path, local_path, attrs))

    def _plan_folder(self, remote_root: str, local_root: str, plan: Plan) -> None:
        stack: list[tuple[str, str]] = [(remote_root, local_root)]

        while stack:
            if self._checkpoint is not None:
                self._checkpoint()

            remote_dir, local_dir = stack.pop()
            try:
                entries = self._list(remote_dir)
            except PlanningError as e:
                plan.failed_items.append(FailedItem(path=remote_dir, error=str(e)))
                continue

            subdirs: list[tuple[str, str]] = []
            for attrs in sorted(entries, key=lambda a: a.filename):
                if attrs.filename in IGNORED_NAMES:
                    continue
                remote_path = posixpath.join(remote_dir, attrs.filename)
                local_path = os.path.join(local_dir, attrs.filename)
                mode = attrs.st_mode

                if mode is not None and stat.S_ISDIR(mode):
                    subdirs.append((remote_path, local_path))
                elif mode is not None and not stat.S_ISREG(mode):
                    logger.debug("Skipping non-regular entry %s", remote_path)
                elif needs_transfer(attrs, local_path):
                    plan.add(_task(remote_path, local_path, attrs))

            # Reversed so subdirectories are visited in name order
            stack.extend(reversed(subdirs))
