"""Streaming file transfer from SFTP to local storage.

This module provides:
- FileTransfer: copies one planned file, checkpointed on every chunk

Per-file failures (local mkdir, stream creation, read, write) are recorded on
the progress tracker and the transfer returns normally so the rest of the
plan proceeds. Interruption is raised as JobInterrupted after both streams
are closed; the partial local file is left for the next diff to re-detect.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import IO, TYPE_CHECKING, Any, Protocol

import paramiko

from sftpmirror.core.config import DEFAULT_CHUNK_SIZE
from sftpmirror.sync.types import FailedItem, FileTask, TransferError

if TYPE_CHECKING:
    from sftpmirror.sync.progress import ProgressTracker

logger = logging.getLogger(__name__)

# Errors a remote read or open can raise
REMOTE_ERRORS: tuple[type[BaseException], ...] = (OSError, EOFError, paramiko.SSHException)


class RemoteOpener(Protocol):
    """Subset of paramiko.SFTPClient used for transfers."""

    def open(self, filename: str, mode: str = "r", bufsize: int = -1) -> Any: ...


class FileTransfer:
    """Copies planned files from an SFTP session to local disk.

    Usage:
        transfer = FileTransfer(sftp, tracker, checkpoint=control.checkpoint)
        for task in plan.files:
            control.checkpoint()
            transfer.run(task)
    """

    def __init__(
        self,
        sftp: RemoteOpener,
        tracker: ProgressTracker,
        checkpoint: Callable[[], None] | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize the transfer executor.

        Args:
            sftp: Open SFTP client.
            tracker: Receives byte counts and failures.
            checkpoint: Called on every received chunk; may raise JobInterrupted.
            chunk_size: Bytes requested per read.
        """
        self._sftp = sftp
        self._tracker = tracker
        self._checkpoint = checkpoint
        self._chunk_size = chunk_size

    def run(self, task: FileTask) -> bool:
        """Transfer one file.

        Returns:
            True on success, False if a failure was recorded.

        Raises:
            JobInterrupted: If the checkpoint requested cancel or pause.
        """
        try:
            self._copy(task)
        except TransferError as e:
            self._tracker.record_failure(FailedItem(path=task.remote_path, error=str(e)))
            return False

        self._apply_times(task)
        logger.debug("Transferred %s -> %s (%d bytes)", task.remote_path, task.local_path, task.size)
        return True

    def _copy(self, task: FileTask) -> None:
        local_dir = os.path.dirname(task.local_path)
        if local_dir and not os.path.isdir(local_dir):
            try:
                os.makedirs(local_dir, exist_ok=True)
            except OSError as e:
                raise TransferError(f"Local mkdir failed: {e}") from e

        try:
            remote_file = self._sftp.open(task.remote_path, "rb")
        except REMOTE_ERRORS as e:
            raise TransferError(f"Stream creation failed: {e}") from e

        with remote_file:
            try:
                local_file = open(task.local_path, "wb")
            except OSError as e:
                raise TransferError(f"Stream creation failed: {e}") from e
            with local_file:
                prefetch = getattr(remote_file, "prefetch", None)
                if prefetch is not None:
                    prefetch(task.size)
                self._pump(remote_file, local_file)

    def _pump(self, remote_file: Any, local_file: IO[bytes]) -> None:
        while True:
            try:
                chunk = remote_file.read(self._chunk_size)
            except REMOTE_ERRORS as e:
                raise TransferError(str(e)) from e
            if not chunk:
                return

            if self._checkpoint is not None:
                self._checkpoint()

            try:
                local_file.write(chunk)
            except OSError as e:
                raise TransferError(f"Write error: {e}") from e
            self._tracker.advance(len(chunk))

    def _apply_times(self, task: FileTask) -> None:
        """Copy remote atime/mtime so the next diff sees the file as clean."""
        if task.mtime is None:
            return
        atime = task.atime if task.atime is not None else task.mtime
        try:
            os.utime(task.local_path, (atime, task.mtime))
        except OSError as e:
            logger.warning("Failed to set timestamps for %s: %s", task.local_path, e)
