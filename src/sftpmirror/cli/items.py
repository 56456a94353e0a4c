"""Sync item commands.

Commands:
- item add: Register a remote/local pair
- item list: List sync items and their current job
- item toggle: Activate or deactivate an item
- item remove: Delete an item (optionally its local files)
"""

from __future__ import annotations

import click

from sftpmirror.cli.common import api_client, format_size


@click.group()
def item() -> None:
    """Manage mirrored remote/local pairs."""


@item.command("add")
@click.argument("remote_path")
@click.argument("local_path")
@click.option(
    "--kind",
    type=click.Choice(["file", "folder"]),
    default="folder",
    show_default=True,
    help="Mirror a single file or a folder tree.",
)
@click.option("--inactive", is_flag=True, help="Exclude from scheduled runs.")
@click.pass_context
def add_cmd(ctx: click.Context, remote_path: str, local_path: str, kind: str, inactive: bool) -> None:
    """Mirror REMOTE_PATH onto LOCAL_PATH and queue a first sync."""
    with api_client(ctx) as client:
        data = client.create_item(remote_path, local_path, kind=kind, active=not inactive)
    click.echo(f"Added item {data['id']}: {data['remote_path']} -> {data['local_path']}")


@item.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List sync items."""
    with api_client(ctx) as client:
        items = client.list_items()

    if not items:
        click.echo("No sync items.")
        return

    for data in items:
        flag = "" if data["active"] else " (inactive)"
        click.echo(
            f"[{data['id']}] {data['remote_path']} -> {data['local_path']} "
            f"{data['kind']} {data['status']}{flag}"
        )
        if data.get("error_message"):
            click.echo(f"    error: {data['error_message']}")
        job = data.get("job")
        if job:
            click.echo(
                f"    job {job['id']} {job['status']} "
                f"{format_size(job['processed_bytes'])} / {format_size(job['total_bytes'])}"
            )


@item.command("toggle")
@click.argument("item_id", type=int)
@click.option("--on/--off", "active", default=True, help="Activate or deactivate.")
@click.pass_context
def toggle_cmd(ctx: click.Context, item_id: int, active: bool) -> None:
    """Include or exclude ITEM_ID from scheduled runs."""
    with api_client(ctx) as client:
        data = client.toggle_item(item_id, active)
    click.echo(f"Item {data['id']} {'activated' if data['active'] else 'deactivated'}")


@item.command("remove")
@click.argument("item_id", type=int)
@click.option("--delete-files", is_flag=True, help="Also delete the local copy.")
@click.confirmation_option(prompt="Remove this sync item?")
@click.pass_context
def remove_cmd(ctx: click.Context, item_id: int, delete_files: bool) -> None:
    """Remove ITEM_ID, cancelling its open jobs."""
    with api_client(ctx) as client:
        client.delete_item(item_id, delete_files=delete_files)
    click.echo(f"Removed item {item_id}")
