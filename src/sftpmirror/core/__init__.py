"""Core module - Shared configuration."""

from sftpmirror.core.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_TICK_INTERVAL,
    AppConfig,
    ConnectionConfig,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_TICK_INTERVAL",
    "AppConfig",
    "ConnectionConfig",
]
