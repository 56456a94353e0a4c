"""Shared fixtures: a job store and an SFTP stand-in backed by a local directory."""

from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from contextlib import contextmanager
from pathlib import Path

import paramiko
import pytest

from sftpmirror.server.database import Database


class FakeRemoteFile:
    """Readable remote file; ``on_read`` runs before every chunk is returned."""

    def __init__(self, local: Path, remote_path: str, on_read: Callable[[str], None] | None) -> None:
        self._fh = open(local, "rb")
        self._remote_path = remote_path
        self._on_read = on_read
        self.prefetched: int | None = None

    def prefetch(self, file_size: int | None = None) -> None:
        self.prefetched = file_size

    def read(self, size: int) -> bytes:
        if self._on_read is not None:
            self._on_read(self._remote_path)
        return self._fh.read(size)

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> FakeRemoteFile:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class FakeSFTP:
    """paramiko.SFTPClient stand-in serving ``root`` as the remote filesystem.

    Remote paths are absolute POSIX paths mapped under ``root``. Paths in
    ``denied`` raise PermissionError on open and listdir.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.denied: set[str] = set()
        self.on_read: Callable[[str], None] | None = None
        self.opened: list[str] = []
        self.listed: list[str] = []

    def _local(self, remote_path: str) -> Path:
        return self.root / remote_path.lstrip("/")

    @staticmethod
    def _attrs(st: os.stat_result, filename: str | None = None) -> paramiko.SFTPAttributes:
        attrs = paramiko.SFTPAttributes.from_stat(st, filename)
        # The SFTP protocol carries whole seconds
        attrs.st_mtime = int(st.st_mtime)
        attrs.st_atime = int(st.st_atime)
        return attrs

    def stat(self, path: str) -> paramiko.SFTPAttributes:
        return self._attrs(os.stat(self._local(path)))

    def listdir_attr(self, path: str = ".") -> list[paramiko.SFTPAttributes]:
        if path in self.denied:
            raise PermissionError(13, "Permission denied", path)
        self.listed.append(path)
        with os.scandir(self._local(path)) as entries:
            return [self._attrs(e.stat(follow_symlinks=False), e.name) for e in entries]

    def open(self, filename: str, mode: str = "r", bufsize: int = -1) -> FakeRemoteFile:
        if filename in self.denied:
            raise PermissionError(13, "Permission denied", filename)
        self.opened.append(filename)
        return FakeRemoteFile(self._local(filename), filename, self.on_read)


class FakeProvider:
    """Connection provider handing out one FakeSFTP."""

    def __init__(self, sftp: FakeSFTP) -> None:
        self.sftp = sftp
        self.sessions = 0
        self.error: Exception | None = None

    @contextmanager
    def session(self, abort_check: Callable[[], None] | None = None) -> Iterator[FakeSFTP]:
        if self.error is not None:
            raise self.error
        self.sessions += 1
        yield self.sftp


def write_file(path: Path, content: bytes | str, mtime: int | None = None) -> Path:
    """Create a file (and parents), optionally with a fixed mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode() if isinstance(content, str) else content
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def remote_root(tmp_path: Path) -> Path:
    """Directory served as the remote filesystem."""
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def mirror_root(tmp_path: Path) -> Path:
    """Directory receiving local copies."""
    root = tmp_path / "mirror"
    root.mkdir()
    return root


@pytest.fixture
def sftp(remote_root: Path) -> FakeSFTP:
    """SFTP stand-in over remote_root."""
    return FakeSFTP(remote_root)


@pytest.fixture
def provider(sftp: FakeSFTP) -> FakeProvider:
    """Connection provider yielding the fake SFTP client."""
    return FakeProvider(sftp)


@pytest.fixture
def make_remote(remote_root: Path) -> Callable[..., Path]:
    """Create a remote file: make_remote("/data/a.txt", b"...", mtime=...)."""

    def _make(remote_path: str, content: bytes | str, mtime: int | None = None) -> Path:
        return write_file(remote_root / remote_path.lstrip("/"), content, mtime)

    return _make
