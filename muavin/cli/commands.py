"""CLI commands for muavin."""

import asyncio
import sys
import time

import typer
from rich.console import Console
from rich.table import Table

from muavin import __logo__, __version__

app = typer.Typer(
    name="muavin",
    help=f"{__logo__} muavin - personal automation assistant",
    no_args_is_help=True,
)

console = Console()


def _format_ms(ms: int | None) -> str:
    if not ms:
        return ""
    return time.strftime("%Y-%m-%d %H:%M", time.localtime(ms / 1000))


def _configure_logging(verbose: bool) -> None:
    from loguru import logger

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} muavin v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """muavin - personal automation assistant."""
    _configure_logging(verbose)


def _load_config_or_exit():
    from muavin.config.loader import ConfigurationError, load_config, load_env

    load_env()
    try:
        return load_config()
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _make_delivery(config):
    from muavin.channels.telegram import TelegramDelivery
    from muavin.config.loader import ConfigurationError, get_data_dir
    from muavin.events import JsonlEventSink
    from muavin.session.history import ChatHistory

    data_dir = get_data_dir()
    try:
        return TelegramDelivery.from_config(
            config,
            events=JsonlEventSink(data_dir / "events.jsonl"),
            history=ChatHistory(data_dir / "history"),
        )
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Job runner
# ============================================================================


@app.command("run-job")
def run_job(
    job_id: str = typer.Argument(None, help="Job ID to run"),
):
    """Run one job by id and record its run state."""
    from muavin.config.loader import get_data_dir
    from muavin.jobs.runner import build_runner

    if not job_id:
        console.print("[red]Usage: muavin run-job <job-id>[/red]")
        raise typer.Exit(1)

    config = _load_config_or_exit()
    runner = build_runner(config, get_data_dir())
    asyncio.run(runner.run(job_id))


# ============================================================================
# Jobs
# ============================================================================


jobs_app = typer.Typer(help="Inspect scheduled jobs")
app.add_typer(jobs_app, name="jobs")


@jobs_app.command("list")
def jobs_list(
    all: bool = typer.Option(False, "--all", "-a", help="Include disabled jobs"),
):
    """List jobs with their last and next run."""
    from muavin.config.loader import get_data_dir
    from muavin.jobs.store import JobStateStore, JobStore, compute_next_run_ms

    data_dir = get_data_dir()
    jobs = JobStore.in_dir(data_dir).load() or []
    if not all:
        jobs = [j for j in jobs if j.enabled]

    if not jobs:
        console.print("No jobs.")
        return

    state = JobStateStore(data_dir / "job-state.json").read()
    now = int(time.time() * 1000)

    table = Table(title="Jobs")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Action")
    table.add_column("Schedule")
    table.add_column("Status")
    table.add_column("Last Run")
    table.add_column("Next Run")

    for job in jobs:
        status = "[green]enabled[/green]" if job.enabled else "[dim]disabled[/dim]"
        action = job.action if job.action != "none" else ("prompt" if job.prompt else "none")
        table.add_row(
            job.id,
            job.name,
            action,
            job.schedule or "",
            status,
            _format_ms(state.get(job.id)),
            _format_ms(compute_next_run_ms(job.schedule, now)) if job.enabled else "",
        )

    console.print(table)


# ============================================================================
# Outbox
# ============================================================================


outbox_app = typer.Typer(help="Inspect and relay pending outbox entries")
app.add_typer(outbox_app, name="outbox")


@outbox_app.command("list")
def outbox_list():
    """List pending outbox entries, oldest first."""
    from muavin.config.loader import get_data_dir
    from muavin.outbox import Outbox

    pending = Outbox(get_data_dir() / "outbox").read_pending()
    if not pending:
        console.print("Outbox is empty.")
        return

    table = Table(title="Outbox")
    table.add_column("File", style="cyan")
    table.add_column("Source")
    table.add_column("Task")
    table.add_column("Chat")
    table.add_column("Created")

    for item in pending:
        entry = item.entry
        table.add_row(item.filename, f"{entry.source}:{entry.source_id}", entry.task, entry.chat_id, entry.created_at)

    console.print(table)


@outbox_app.command("flush")
def outbox_flush():
    """Deliver pending outbox entries to Telegram."""
    from muavin.config.loader import get_data_dir
    from muavin.outbox import Outbox, flush_outbox

    config = _load_config_or_exit()
    delivery = _make_delivery(config)
    outbox = Outbox(get_data_dir() / "outbox")

    async def run() -> int:
        try:
            return await flush_outbox(outbox, delivery)
        finally:
            await delivery.aclose()

    delivered = asyncio.run(run())
    console.print(f"[green]✓[/green] Delivered {delivered} item(s)")


# ============================================================================
# One-off send
# ============================================================================


@app.command()
def send(
    chat_id: str = typer.Argument(..., help="Telegram chat id"),
    text: str = typer.Argument(..., help="Message text"),
    fmt: str = typer.Option("rich", "--format", "-f", help="rich or plain"),
):
    """Send a message through the delivery engine."""
    if fmt not in ("rich", "plain"):
        console.print(f"[red]Error: unknown format '{fmt}', use rich or plain[/red]")
        raise typer.Exit(1)

    config = _load_config_or_exit()
    delivery = _make_delivery(config)

    async def run() -> bool:
        try:
            return await delivery.deliver(chat_id, text, fmt)
        finally:
            await delivery.aclose()

    if asyncio.run(run()):
        console.print("[green]✓[/green] Sent")
    else:
        console.print(f"[red]Failed to deliver to {chat_id}[/red]")
        raise typer.Exit(1)
