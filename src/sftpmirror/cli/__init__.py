"""Command-line interface for sftpmirror.

This module provides the main CLI entry point and assembles all commands.

Commands:
- serve: Run the service (API, worker loop, scheduler)
- item: Manage sync items (add, list, toggle, remove)
- job: Inspect and control jobs (list, run, cancel, pause, resume, prioritize)
- status: Health check of the running service
- check: Dry-run diff of one sync item
- settings: Show or change runtime settings

Every command except serve talks to a running service over HTTP.
"""

from __future__ import annotations

import click

from sftpmirror.cli.items import item
from sftpmirror.cli.jobs import job
from sftpmirror.cli.server import check, serve, settings, status
from sftpmirror.client import DEFAULT_SERVER_URL


@click.group()
@click.version_option(package_name="sftpmirror")
@click.option(
    "--server",
    "server_url",
    envvar="SFTPMIRROR_SERVER_URL",
    default=DEFAULT_SERVER_URL,
    show_default=True,
    help="Base URL of the running service.",
)
@click.pass_context
def cli(ctx: click.Context, server_url: str) -> None:
    """sftpmirror - one-way SFTP mirroring."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("server_url", server_url)


# Service commands
cli.add_command(serve)
cli.add_command(status)
cli.add_command(check)
cli.add_command(settings)

# Item and job commands
cli.add_command(item)
cli.add_command(job)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = ["cli", "main"]
