"""Job queue commands.

Commands:
- job list: Show recent jobs
- job run: Queue a manual sync for an item
- job cancel / pause / resume: Control one job
- job pause-all / resume-all: Control every job
- job prioritize: Move a job ahead of all others
"""

from __future__ import annotations

import click

from sftpmirror.cli.common import api_client, format_size


@click.group()
def job() -> None:
    """Inspect and control sync jobs."""


@job.command("list")
@click.option("--page", type=int, default=1, show_default=True)
@click.option("--limit", type=int, default=25, show_default=True)
@click.option("--search", default=None, help="Filter by status, log, path or failure.")
@click.pass_context
def list_cmd(ctx: click.Context, page: int, limit: int, search: str | None) -> None:
    """List jobs, most recent first."""
    with api_client(ctx) as client:
        data = client.list_jobs(page=page, limit=limit, search=search)

    click.echo(
        f"Page {data['page']}/{data['pages']} - {data['total']} job(s), "
        f"{data['active']} active, {data['paused']} paused"
    )
    for entry in data["jobs"]:
        speed = entry.get("current_speed")
        speed_text = f" {format_size(speed)}/s" if speed else ""
        click.echo(
            f"{entry['id']} {entry['kind']:<5} {entry['status']:<10} p={entry['priority']} "
            f"{format_size(entry['processed_bytes'])}/{format_size(entry['total_bytes'])}"
            f"{speed_text} {entry.get('remote_path') or '-'}"
        )
        if entry.get("log"):
            click.echo(f"    {entry['log']}")
        for failure in entry.get("failed_items") or []:
            click.echo(f"    failed: {failure['path']}: {failure['error']}")


@job.command("run")
@click.argument("item_id", type=int)
@click.pass_context
def run_cmd(ctx: click.Context, item_id: int) -> None:
    """Queue a manual sync for ITEM_ID."""
    with api_client(ctx) as client:
        job_id = client.run_item(item_id)
    click.echo(f"Queued job {job_id}")


def _control(ctx: click.Context, job_id: str, action: str) -> None:
    with api_client(ctx) as client:
        data = client.control_job(job_id, action)
    if data["success"]:
        click.echo(f"Job {job_id}: {data['status']}")
    else:
        click.echo(f"Job {job_id}: nothing to {action} (status {data['status']})")


@job.command("cancel")
@click.argument("job_id")
@click.pass_context
def cancel_cmd(ctx: click.Context, job_id: str) -> None:
    """Cancel JOB_ID."""
    _control(ctx, job_id, "cancel")


@job.command("pause")
@click.argument("job_id")
@click.pass_context
def pause_cmd(ctx: click.Context, job_id: str) -> None:
    """Pause JOB_ID at its next checkpoint."""
    _control(ctx, job_id, "pause")


@job.command("resume")
@click.argument("job_id")
@click.pass_context
def resume_cmd(ctx: click.Context, job_id: str) -> None:
    """Resume JOB_ID."""
    _control(ctx, job_id, "resume")


@job.command("pause-all")
@click.pass_context
def pause_all_cmd(ctx: click.Context) -> None:
    """Pause every running and queued job."""
    with api_client(ctx) as client:
        count = client.pause_all()
    click.echo(f"Paused {count} job(s)")


@job.command("resume-all")
@click.pass_context
def resume_all_cmd(ctx: click.Context) -> None:
    """Resume every paused job."""
    with api_client(ctx) as client:
        count = client.resume_all()
    click.echo(f"Resumed {count} job(s)")


@job.command("prioritize")
@click.argument("job_id")
@click.option("--priority", type=int, default=None, help="Explicit priority (default: highest).")
@click.pass_context
def prioritize_cmd(ctx: click.Context, job_id: str, priority: int | None) -> None:
    """Run JOB_ID next, preempting lower-priority jobs."""
    with api_client(ctx) as client:
        data = client.set_priority(job_id, priority)
    click.echo(f"Job {job_id}: priority {data['priority']} ({data['status']})")
