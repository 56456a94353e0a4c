"""Shared helpers for CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager

import click

from sftpmirror.client import DEFAULT_SERVER_URL, APIError, MirrorClient


def format_size(size: int | float | None) -> str:
    """Format bytes as human-readable size."""
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


@contextmanager
def api_client(ctx: click.Context) -> Iterator[MirrorClient]:
    """Yield a client for the configured server; exit(1) on API errors.

    A client placed in ``ctx.obj["client"]`` is reused and left open.
    """
    obj = ctx.ensure_object(dict)
    injected: MirrorClient | None = obj.get("client")
    client = injected or MirrorClient(obj.get("server_url") or DEFAULT_SERVER_URL)
    try:
        yield client
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        if injected is None:
            client.close()
