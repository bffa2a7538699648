"""
syncloop CLI - Sync entry commands.

Create, run, list, show and delete sync entries, and run the scheduler loop
in the foreground.
"""

import json
import signal
import threading
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from syncloop.cli.errors import (
    ExitCode,
    print_engine_not_configured_error,
    print_error,
    print_sync_not_found_error,
)
from syncloop.core.apps.models import AppReloadOption, ApplyResponse
from syncloop.core.config import load_config
from syncloop.core.store import EntryNotFoundError, StoreError, SyncEntry, SyncMetadata, SyncState
from syncloop.core.sync import (
    EngineLoadError,
    SyncJobError,
    SyncScheduler,
    SyncService,
    build_sync_service,
)
from syncloop.core.sync.service import SyncError

console = Console()
app = typer.Typer(
    name="sync",
    help="Manage sync entries",
    no_args_is_help=True,
)

STATE_STYLES = {
    SyncState.ENABLED: "green",
    SyncState.FAILING: "yellow",
    SyncState.DISABLED: "red",
}


def _get_service(require_engine: bool = True) -> SyncService:
    """Build the sync service from configuration, exiting with a message on failure."""
    try:
        config = load_config()
    except ValidationError as e:
        print_error("Invalid configuration", reason=str(e))
        raise typer.Exit(ExitCode.USER_ERROR)

    try:
        return build_sync_service(config, require_engine=require_engine)
    except EngineLoadError as e:
        if not config.engine:
            print_engine_not_configured_error()
        else:
            print_error("Cannot load sync engine", reason=str(e))
        raise typer.Exit(ExitCode.USER_ERROR)
    except StoreError as e:
        print_error("Cannot open metadata store", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)


def _mask_secret(secret: str) -> str:
    if not secret:
        return ""
    prefix, sep, _ = secret.partition("_tkn_")
    return f"{prefix}{sep}****" if sep else "****"


def _entry_to_dict(entry: SyncEntry) -> dict[str, Any]:
    data = entry.model_dump(mode="json")
    data["metadata"]["webhook_url"] = entry.metadata.webhook_url
    data["metadata"]["webhook_secret"] = _mask_secret(entry.metadata.webhook_secret)
    return data


def _format_time(entry: SyncEntry) -> str:
    last_run = entry.status.last_execution_time
    if last_run is None:
        return "-"
    return last_run.strftime("%Y-%m-%d %H:%M:%S")


@app.command("list")
def list_entries(
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    List all sync entries.

    Examples:
        syncloop sync list
        syncloop sync list --json
    """
    service = _get_service(require_engine=False)
    try:
        entries = service.list_sync_entries().entries
    except StoreError as e:
        print_error("Cannot list sync entries", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    if json_output:
        typer.echo(json.dumps([_entry_to_dict(e) for e in entries], indent=2))
        return

    if not entries:
        console.print("[dim]No sync entries[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("Path")
    table.add_column("Type")
    table.add_column("Every", justify="right")
    table.add_column("State")
    table.add_column("Failures", justify="right")
    table.add_column("Last Run")
    table.add_column("Commit")

    for entry in entries:
        state = entry.status.state
        table.add_row(
            entry.id,
            escape(entry.path),
            "scheduled" if entry.is_scheduled else "webhook",
            f"{entry.metadata.schedule_frequency}m" if entry.is_scheduled else "-",
            f"[{STATE_STYLES[state]}]{state.value}[/{STATE_STYLES[state]}]",
            str(entry.status.failure_count),
            _format_time(entry),
            entry.status.commit_id[:8] or "-",
        )

    console.print(table)


@app.command()
def show(
    sync_id: str = typer.Argument(..., help="Sync entry id"),
) -> None:
    """
    Show one sync entry with its last run status.

    Examples:
        syncloop sync show cl_syn_0192a3b4c5d6e1f2a3b4c5d6e7f8
    """
    service = _get_service(require_engine=False)
    try:
        entry = service.get_sync_entry(sync_id)
    except EntryNotFoundError:
        print_sync_not_found_error(sync_id)
        raise typer.Exit(ExitCode.USER_ERROR)
    except StoreError as e:
        print_error("Cannot load sync entry", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    metadata = entry.metadata
    status = entry.status
    state_style = STATE_STYLES[status.state]

    console.print(f"[bold]{entry.id}[/bold]")
    console.print(f"  Path:          {escape(entry.path)}")
    if entry.is_scheduled:
        console.print(f"  Schedule:      every {metadata.schedule_frequency} minutes")
    else:
        console.print(f"  Webhook URL:   {escape(metadata.webhook_url or '-')}")
        console.print(f"  Secret:        {_mask_secret(metadata.webhook_secret)}")
    console.print(f"  Branch:        {escape(metadata.git_branch)}")
    console.print(f"  Git auth:      {escape(metadata.git_auth or '(default)')}")
    console.print(
        f"  Policy:        reload={metadata.reload.value} approve={metadata.approve} "
        f"promote={metadata.promote} clobber={metadata.clobber} "
        f"force_reload={metadata.force_reload}"
    )
    console.print()
    console.print(f"  State:         [{state_style}]{status.state.value}[/{state_style}]")
    console.print(f"  Failures:      {status.failure_count}")
    console.print(f"  Last run:      {_format_time(entry)}")
    console.print(f"  Commit:        {status.commit_id or '-'}")
    if status.apply_response.skipped_apply:
        console.print("  Last apply:    skipped, no changes")
    if status.error:
        console.print(f"  Error:         [red]{escape(status.error)}[/red]")


@app.command()
def delete(
    sync_id: str = typer.Argument(..., help="Sync entry id"),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Check the entry exists without deleting it",
    ),
) -> None:
    """
    Delete a sync entry.

    Examples:
        syncloop sync delete cl_syn_0192a3b4c5d6e1f2a3b4c5d6e7f8
    """
    service = _get_service(require_engine=False)
    try:
        result = service.delete_sync_entry(sync_id, dry_run=dry_run)
    except EntryNotFoundError:
        print_sync_not_found_error(sync_id)
        raise typer.Exit(ExitCode.USER_ERROR)
    except StoreError as e:
        print_error("Cannot delete sync entry", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    if result.dry_run:
        console.print(f"[blue]Dry run:[/blue] would delete {result.id}")
    else:
        console.print(f"[green]✓[/green] Deleted {result.id}")


@app.command()
def create(
    path: str = typer.Argument(..., help="Git path holding the application definitions"),
    scheduled: bool = typer.Option(
        True,
        "--scheduled/--webhook",
        help="Run on a schedule, or only when the webhook is called",
    ),
    frequency: int = typer.Option(
        0,
        "--frequency",
        "-f",
        help="Minutes between scheduled runs (0 for the configured default)",
    ),
    branch: str = typer.Option("main", "--branch", "-b", help="Git branch"),
    git_auth: str = typer.Option("", "--git-auth", help="Git auth profile name"),
    approve: bool = typer.Option(False, "--approve", help="Approve permission changes"),
    promote: bool = typer.Option(False, "--promote", help="Promote changes to prod"),
    reload: AppReloadOption = typer.Option(
        AppReloadOption.UPDATED,
        "--reload",
        help="Which apps to reload on apply",
        case_sensitive=False,
    ),
    clobber: bool = typer.Option(False, "--clobber", help="Overwrite changes made outside sync"),
    force_reload: bool = typer.Option(
        False, "--force-reload", help="Reload apps even when their source is unchanged"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run once without committing"),
) -> None:
    """
    Create a sync entry and run it once.

    The entry is only created if the first run succeeds.

    Examples:
        syncloop sync create github.com/acme/apps --frequency 10
        syncloop sync create github.com/acme/apps --webhook --reload matched
    """
    service = _get_service()
    metadata = SyncMetadata(
        approve=approve,
        promote=promote,
        reload=reload,
        git_branch=branch,
        git_auth=git_auth,
        clobber=clobber,
        force_reload=force_reload,
        schedule_frequency=frequency,
    )

    try:
        result = service.create_sync_entry(path, scheduled, dry_run=dry_run, metadata=metadata)
    except SyncJobError as e:
        print_error("Sync failed, entry not created", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    except (SyncError, StoreError) as e:
        print_error("Cannot create sync entry", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    prefix = "[blue]Dry run:[/blue] " if result.dry_run else "[green]✓[/green] "
    console.print(f"{prefix}Created {result.id}")
    if scheduled:
        console.print(f"  Runs every {result.schedule_frequency} minutes")
    else:
        console.print(f"  Webhook URL:    {escape(result.webhook_url or '-')}")
        console.print(f"  Webhook secret: {result.webhook_secret}")
        console.print("  [dim]The secret is shown only once[/dim]")
    _print_status_summary(result.sync_job_status.commit_id, result.sync_job_status.apply_response)


@app.command()
def run(
    sync_id: str = typer.Argument(..., help="Sync entry id"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Run without committing"),
) -> None:
    """
    Run a sync entry now, even if it is Disabled.

    Examples:
        syncloop sync run cl_syn_0192a3b4c5d6e1f2a3b4c5d6e7f8
    """
    service = _get_service()
    try:
        status = service.run_sync(sync_id, dry_run=dry_run)
    except EntryNotFoundError:
        print_sync_not_found_error(sync_id)
        raise typer.Exit(ExitCode.USER_ERROR)
    except SyncJobError as e:
        failures = e.status.failure_count if e.status is not None else 0
        print_error("Sync failed", reason=f"{e} (failure {failures})")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    except (SyncError, StoreError) as e:
        print_error("Cannot run sync", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    prefix = "[blue]Dry run:[/blue] " if dry_run else "[green]✓[/green] "
    console.print(f"{prefix}Synced {escape(sync_id)}")
    _print_status_summary(status.commit_id, status.apply_response)


def _print_status_summary(commit_id: str, response: ApplyResponse) -> None:
    if response.skipped_apply:
        console.print("  No changes since last apply")
    else:
        console.print(f"  Commit: {commit_id or '-'}")
    for label, items in (
        ("Created", response.create_results),
        ("Updated", response.update_results),
        ("Reloaded", response.reload_results),
        ("Promoted", response.promote_results),
    ):
        if items:
            console.print(f"  {label}: {escape(', '.join(str(app) for app in items))}")


@app.command()
def serve() -> None:
    """
    Run the scheduler loop in the foreground until interrupted.

    Exits with 130 after Ctrl+C (SIGINT) and 0 after SIGTERM.

    Examples:
        syncloop sync serve
    """
    service = _get_service()
    scheduler = SyncScheduler(service)
    stop = threading.Event()
    received: list[int] = []

    def _handle_signal(signum: int, frame: Any) -> None:
        received.append(signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    console.print(
        f"[blue]Scheduler running[/blue], checking every {scheduler.interval_secs}s "
        "(Ctrl+C to stop)"
    )
    scheduler.start()
    while scheduler.is_running and not stop.wait(1.0):
        pass
    scheduler.stop()

    if not stop.is_set():
        print_error("Scheduler stopped", reason="Listing sync entries failed, see log")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    console.print("[dim]Scheduler stopped[/dim]")
    if received and received[0] == signal.SIGINT:
        raise typer.Exit(ExitCode.SIGINT)
