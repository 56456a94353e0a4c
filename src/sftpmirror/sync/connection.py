"""SFTP session provider.

Opens authenticated paramiko SFTP sessions from ConnectionConfig. Opening is
retried with exponential backoff; the configured connection timeout is the
total wall-clock budget for those attempts, and each attempt uses the
per-attempt socket timeout from the config.
"""

from __future__ import annotations

import io
import logging
import socket
import time
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Protocol

import paramiko

from sftpmirror.core.config import ConnectionConfig
from sftpmirror.sync.retry import retry_with_backoff
from sftpmirror.sync.types import ConfigurationError, RemoteConnectionError

logger = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 300.0  # seconds without data before a read fails

_KEY_CLASSES: tuple[type[paramiko.PKey], ...] = (
    paramiko.RSAKey,
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
)


class ConnectionProvider(Protocol):
    """Anything that can hand out SFTP sessions for a job run."""

    def session(
        self, abort_check: Callable[[], None] | None = None
    ) -> AbstractContextManager[Any]: ...


def load_private_key(config: ConnectionConfig) -> paramiko.PKey | None:
    """Load the private key described by ``config``, if any.

    Raises:
        ConfigurationError: If key material is present but unreadable.
    """
    if not config.private_key and not config.private_key_path:
        return None

    last_error: Exception | None = None
    for key_class in _KEY_CLASSES:
        try:
            if config.private_key:
                return key_class.from_private_key(
                    io.StringIO(config.private_key), password=config.private_key_passphrase
                )
            return key_class.from_private_key_file(
                config.private_key_path, password=config.private_key_passphrase
            )
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
        except OSError as e:
            raise ConfigurationError(f"Cannot read private key: {e}") from e
    raise ConfigurationError(f"Unsupported or invalid private key: {last_error}")


class SFTPConnectionProvider:
    """Opens paramiko SFTP sessions with retry.

    Usage:
        provider = SFTPConnectionProvider(ConnectionConfig.from_env())
        with provider.session() as sftp:
            sftp.stat("/data")
    """

    def __init__(
        self,
        config: ConnectionConfig | Callable[[], ConnectionConfig],
        retry_budget: float | Callable[[], float] = 60.0,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Connection parameters, or a callable returning fresh ones.
            retry_budget: Seconds (or callable returning seconds) during which
                failed connection attempts are retried.
            read_timeout: Channel timeout for reads on an open session.
        """
        self._config = config
        self._retry_budget = retry_budget
        self._read_timeout = read_timeout

    def _resolve_config(self) -> ConnectionConfig:
        config = self._config() if callable(self._config) else self._config
        if not config.host or not config.username:
            raise ConfigurationError("Missing SSH configuration (host and username are required)")
        return config

    def _budget(self) -> float:
        return float(self._retry_budget() if callable(self._retry_budget) else self._retry_budget)

    def _connect_once(self, config: ConnectionConfig, pkey: paramiko.PKey | None) -> paramiko.Transport:
        sock = socket.create_connection((config.host, config.port), timeout=config.connect_timeout)
        transport = paramiko.Transport(sock)
        transport.banner_timeout = config.connect_timeout
        transport.auth_timeout = config.connect_timeout
        try:
            transport.connect(username=config.username, password=config.password, pkey=pkey)
        except paramiko.AuthenticationException as e:
            # Not retryable: wrong credentials stay wrong
            transport.close()
            raise RemoteConnectionError(f"Authentication failed: {e}") from e
        except BaseException:
            transport.close()
            raise
        return transport

    def open_transport(
        self, abort_check: Callable[[], None] | None = None
    ) -> paramiko.Transport:
        """Open an authenticated transport, retrying transient failures.

        Args:
            abort_check: Called between attempts; may raise to give up early.

        Raises:
            ConfigurationError: Missing host/username or unusable key.
            RemoteConnectionError: Authentication failure, or every attempt
                within the retry budget failed.
        """
        config = self._resolve_config()
        pkey = load_private_key(config)
        deadline = time.monotonic() + self._budget()

        logger.info("Connecting to %s@%s:%d", config.username, config.host, config.port)
        try:
            return retry_with_backoff(
                lambda: self._connect_once(config, pkey),
                max_retries=100,
                retryable_exceptions=(OSError, EOFError, paramiko.SSHException),
                deadline=deadline,
                abort_check=abort_check,
            )
        except (OSError, EOFError, paramiko.SSHException) as e:
            raise RemoteConnectionError(
                f"Cannot connect to {config.host}:{config.port}: {e}"
            ) from e

    @contextmanager
    def session(
        self, abort_check: Callable[[], None] | None = None
    ) -> Iterator[paramiko.SFTPClient]:
        """Yield an open SFTP client and close it (and its transport) on exit."""
        transport = self.open_transport(abort_check)
        try:
            try:
                client = paramiko.SFTPClient.from_transport(transport)
            except (OSError, paramiko.SSHException) as e:
                raise RemoteConnectionError(f"Cannot start SFTP subsystem: {e}") from e
            if client is None:
                raise RemoteConnectionError("Cannot start SFTP subsystem")
            client.get_channel().settimeout(self._read_timeout)
            try:
                yield client
            finally:
                client.close()
        finally:
            transport.close()
