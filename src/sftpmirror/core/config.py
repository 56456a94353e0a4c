"""Configuration classes for sftpmirror.

This module defines:
- ConnectionConfig: decrypted SFTP connection parameters
- AppConfig: process-level settings (database, logs, worker tick)

Both are plain dataclasses populated from environment variables. Runtime
settings that operators change while the service runs (cron schedule, global
enable flag, connection timeout) live in the database instead.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SSH_PORT = 22
DEFAULT_CONNECT_TIMEOUT = 15.0  # seconds, per connection attempt
DEFAULT_TICK_INTERVAL = 1.0  # seconds between worker ticks
DEFAULT_CHUNK_SIZE = 32 * 1024


@dataclass
class ConnectionConfig:
    """Parameters for opening an SFTP session.

    Credentials arrive already decrypted; storing them is the caller's
    concern.

    Attributes:
        host: Remote host name or address.
        port: SSH port.
        username: Login name.
        password: Password, if password authentication is used.
        private_key: PEM-encoded private key text.
        private_key_path: Path to a private key file.
        private_key_passphrase: Passphrase for an encrypted key.
        connect_timeout: Socket/banner/auth timeout for one attempt, in seconds.
    """

    host: str = ""
    port: int = DEFAULT_SSH_PORT
    username: str = ""
    password: str | None = None
    private_key: str | None = None
    private_key_path: str | None = None
    private_key_passphrase: str | None = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ConnectionConfig:
        """Build a connection config from ``SFTPMIRROR_REMOTE_*`` variables."""
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("SFTPMIRROR_REMOTE_HOST", ""),
            port=int(env.get("SFTPMIRROR_REMOTE_PORT", DEFAULT_SSH_PORT)),
            username=env.get("SFTPMIRROR_REMOTE_USER", ""),
            password=env.get("SFTPMIRROR_REMOTE_PASSWORD") or None,
            private_key_path=env.get("SFTPMIRROR_SSH_KEY_PATH") or None,
            private_key_passphrase=env.get("SFTPMIRROR_SSH_KEY_PASSPHRASE") or None,
            connect_timeout=float(
                env.get("SFTPMIRROR_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)
            ),
        )

    @property
    def has_credentials(self) -> bool:
        """Check whether any authentication material is configured."""
        return bool(self.password or self.private_key or self.private_key_path)

    def masked(self) -> dict[str, object]:
        """Return a representation safe for logs and API responses."""
        return {
            "host": self.host,
            "port": self.port,
            "username": self.username,
            "has_password": bool(self.password),
            "has_key": bool(self.private_key or self.private_key_path),
        }


@dataclass
class AppConfig:
    """Process configuration for the mirror service.

    Attributes:
        db_path: SQLite database file.
        log_path: Log file written next to stdout output.
        tick_interval: Seconds between worker loop ticks.
        chunk_size: Bytes read per chunk while streaming a file.
    """

    db_path: Path
    log_path: Path
    tick_interval: float = DEFAULT_TICK_INTERVAL
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AppConfig:
        """Build the app config from ``SFTPMIRROR_*`` variables."""
        env = os.environ if environ is None else environ
        return cls(
            db_path=Path(env.get("SFTPMIRROR_DB_PATH", "sftpmirror.db")),
            log_path=Path(env.get("SFTPMIRROR_LOG_PATH", "sftpmirror.log")),
            tick_interval=float(env.get("SFTPMIRROR_TICK_INTERVAL", DEFAULT_TICK_INTERVAL)),
            chunk_size=int(env.get("SFTPMIRROR_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)),
        )
