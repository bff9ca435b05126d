"""
Root Typer application for the ``agqr`` command.

    agqr run          scheduler: timetable → recorder children → cleanup
    agqr cleanup      one coordinator pass (the Cleanup Process)
    agqr status       pending work groups in the bucket
    agqr timetable    upcoming recordings from the current timetable
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import typer
from rich.table import Table

from agqr import __version__
from agqr.cli.utils import console, err_console, fail_config, load_settings, open_storage
from agqr.coordination import Coordinator, GroupOutcome, WorkStore
from agqr.coordination import status as work_status
from agqr.core.errors import AgqrError, MissingConfigError
from agqr.scheduling.scheduler import Scheduler
from agqr.timetable.source import DummyTimetableSource, HttpTimetableSource

app = typer.Typer(
    name="agqr",
    help="agqr: scheduled radio recorder with distributed consolidation.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

LOCAL_STORE_OPTION = typer.Option(
    None,
    "--local-store",
    help="Use this directory as the object store instead of S3.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"agqr {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """agqr: record every program of the timetable and publish the best take."""


# ── run ──────────────────────────────────────────────────────────────────


@app.command("run")
def run(
    dummy_timetable: bool | None = typer.Option(  # noqa: UP007
        None, "--dummy-timetable", help="Record a synthetic program every 10 minutes."
    ),
    debug: bool | None = typer.Option(None, "--debug", help="Shorter intervals."),  # noqa: UP007
) -> None:
    """Start the scheduler and keep recording until stopped.

    SIGINT/SIGTERM once stops gracefully (recordings finish), twice
    terminates recordings, three times exits at once. SIGHUP restarts.
    """
    settings = load_settings(dummy_timetable=dummy_timetable, debug=debug)
    try:
        settings.require_store()
    except MissingConfigError as exc:
        fail_config(exc)

    console.print(
        f"[bold green]Starting agqr scheduler[/bold green] "
        f"(host={settings.hostname}, log_dir={settings.log_dir})"
    )
    scheduler = Scheduler.from_settings(settings)
    raise typer.Exit(code=scheduler.run())


# ── cleanup ──────────────────────────────────────────────────────────────


@app.command("cleanup")
def cleanup(
    hostname: str | None = typer.Option(None, "--hostname", help="Override this host's name."),  # noqa: UP007
    local_store: Path | None = LOCAL_STORE_OPTION,  # noqa: UP007
) -> None:
    """Run one coordination pass over every pending work group."""
    settings = load_settings(hostname=hostname)
    coordinator = Coordinator.from_settings(settings, storage=open_storage(settings, local_store))
    report = coordinator.run()

    for group, outcome in report.outcomes.items():
        style = "green" if outcome is GroupOutcome.CONSOLIDATED else "red" if outcome is GroupOutcome.FAILED else "dim"
        console.print(f"=> {group}: [{style}]{outcome.value}[/{style}]")
    for program, appended in report.index_appended.items():
        console.print(f" * {program}/index.html: {appended} new")

    if not report.ok:
        for key, error in report.errors.items():
            err_console.print(f"[bold red]Failed[/bold red] {key}: {error}")
        raise typer.Exit(code=1)


# ── status ───────────────────────────────────────────────────────────────


@app.command("status")
def status(
    pending_count: bool = typer.Option(False, "--pending-count", help="Print the number of pending groups."),
    invalid_pending_count: bool = typer.Option(
        False, "--invalid-pending-count", help="Print the number of groups without leader or best work."
    ),
    local_store: Path | None = LOCAL_STORE_OPTION,  # noqa: UP007
) -> None:
    """Show pending work groups per program."""
    settings = load_settings()
    store = WorkStore(open_storage(settings, local_store), settings.s3_prefix)

    if pending_count:
        typer.echo(work_status.pending_count(store))
        return
    if invalid_pending_count:
        typer.echo(work_status.invalid_pending_count(store))
        return

    for program in work_status.program_statuses(store):
        console.print(f"=> [bold]{program.program}[/bold] (recorded {program.recordings} times)")
        for group in program.groups:
            winner = group.winner
            best = group.best
            winner_str = f"{winner.host} leads" if winner else "[red]NO LEADER[/red]"
            best_str = f"{best.host} has the best" if best else "[red]NO BEST WORK[/red]"
            console.print(f" * {group.group.work_prefix} ({winner_str}, {best_str})")
            if group.lock_holder:
                console.print(f"   (locked by {group.lock_holder})")
            for attempt in group.attempts:
                note = "" if attempt.complete else ", incomplete"
                console.print(f"    - {attempt.prefix} ({attempt.error_count} err{note})")


# ── timetable ────────────────────────────────────────────────────────────


@app.command("timetable")
def timetable(
    count: int = typer.Option(20, "--count", "-n", help="How many upcoming programs to show."),
    dummy: bool = typer.Option(False, "--dummy", help="Use the synthetic timetable."),
) -> None:
    """Fetch the timetable and list the next recordings."""
    settings = load_settings()
    source = DummyTimetableSource() if dummy or settings.dummy_timetable else HttpTimetableSource(settings.timetable_url)

    try:
        schedule = source.fetch()
    except AgqrError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1)

    now = datetime.now(ZoneInfo(settings.timezone))
    table = Table(title=f"{schedule.programs} programs loaded", pad_edge=False)
    table.add_column("start")
    table.add_column("min", justify="right")
    table.add_column("title", overflow="fold")
    table.add_column("flags")
    for start, program in schedule.take(count, now):
        flags = " ".join(
            name for name, on in (("repeat", program.repeat), ("live", program.live), ("video", program.video)) if on
        )
        table.add_row(start.strftime("%a %m-%d %H:%M"), str(program.duration_minutes), program.title, flags)
    console.print(table)
