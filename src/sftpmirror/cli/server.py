"""Service commands.

Commands:
- serve: Run the API, worker loop and scheduler
- status: Report whether the service answers its health check
- check: Compare an item's remote and local trees
- settings show / set: Inspect or change runtime settings
"""

from __future__ import annotations

import sys

import click

from sftpmirror.cli.common import api_client, format_size


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", type=int, default=8000, show_default=True, help="Bind port.")
def serve(host: str, port: int) -> None:
    """Run the mirror service.

    Configuration comes from SFTPMIRROR_* environment variables
    (database path, log path, remote host and credentials).
    """
    import uvicorn

    uvicorn.run(
        "sftpmirror.server.app:app_factory",
        factory=True,
        host=host,
        port=port,
    )


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Check that the service is up."""
    with api_client(ctx) as client:
        healthy = client.health_check()
        url = client.server_url

    if not healthy:
        click.echo(f"Error: service at {url} is not reachable", err=True)
        sys.exit(1)
    click.echo(f"Service at {url} is healthy")


@click.command()
@click.argument("item_id", type=int)
@click.pass_context
def check(ctx: click.Context, item_id: int) -> None:
    """Show what a sync of ITEM_ID would transfer, without transferring."""
    with api_client(ctx) as client:
        data = client.check_item(item_id)

    if data["status"] == "error":
        click.echo(f"Error: {data.get('error')}", err=True)
        sys.exit(1)
    if data["status"] == "synced":
        click.echo("Up to date")
        return

    click.echo(f"Outdated: {data['diff_count']} file(s), {format_size(data['diff_size'])}")
    for path in data.get("diff_files") or []:
        click.echo(f"  {path}")


@click.group()
def settings() -> None:
    """Inspect or change runtime settings."""


@settings.command("show")
@click.pass_context
def show_cmd(ctx: click.Context) -> None:
    """Print the current settings."""
    with api_client(ctx) as client:
        data = client.get_settings()
    click.echo(f"Schedule:           {data['sync_schedule']}")
    click.echo(f"Global sync:        {'enabled' if data['global_sync_enabled'] else 'disabled'}")
    click.echo(f"Connection timeout: {data['connection_timeout_minutes']} min")
    if data.get("next_run_time"):
        click.echo(f"Next run:           {data['next_run_time']}")


@settings.command("set")
@click.option("--schedule", default=None, help="Crontab expression, e.g. '0 * * * *'.")
@click.option("--enable/--disable", "enabled", default=None, help="Global sync flag.")
@click.option("--timeout", type=int, default=None, help="Connection timeout in minutes.")
@click.pass_context
def set_cmd(
    ctx: click.Context,
    schedule: str | None,
    enabled: bool | None,
    timeout: int | None,
) -> None:
    """Change one or more settings."""
    with api_client(ctx) as client:
        client.update_settings(
            sync_schedule=schedule,
            global_sync_enabled=enabled,
            connection_timeout_minutes=timeout,
        )
    click.echo("Settings updated")
