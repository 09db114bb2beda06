"""
Command-line interface for resumable video uploads.

Provides a guided setup and upload/resume/verify commands using Click.
"""

import signal
import threading
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console
from rich.prompt import Prompt, Confirm
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)
from rich.panel import Panel
from rich.table import Table

from shared.config import UploadConfig, default_config_path, load_config, save_config
from shared.constants import DEFAULT_STATE_DIR, MAX_PARALLEL_UPLOADS, MIN_CHUNK_SIZE
from shared.errors import SessionExpiredError, UploadError
from shared.logging_setup import setup_logging
from shared.models import Backend, UploadOutcome
from .client import UploadClient
from .content_source import ContentSource
from .ticket_store import TicketStore
from .transport_factory import TransportFactory

console = Console()


def _progress() -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
    )


@contextmanager
def _cancel_on_interrupt(cancel_event: threading.Event):
    """Turn Ctrl+C into a cooperative cancel so sessions stay resumable."""
    def handler(signum, frame):
        console.print("\n[yellow]Cancelling after the current chunk...[/yellow]")
        cancel_event.set()

    try:
        previous = signal.signal(signal.SIGINT, handler)
    except ValueError:
        # Not the main thread; leave Ctrl+C alone
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _build_client(ctx: click.Context, cancel_event: threading.Event, **overrides) -> UploadClient:
    config = load_config(ctx.obj['config_path'], **overrides)
    store = TicketStore(ctx.obj['state_dir'])
    return UploadClient(config, cancel_event=cancel_event, on_ticket=store.on_ticket)


def _print_outcome(path: str, outcome: UploadOutcome) -> None:
    if outcome.is_verified_complete:
        console.print(f"[green]✓[/green] {path} -> [cyan]{outcome.artifact_uri}[/cyan] "
                      f"({outcome.bytes_written:,} bytes, {outcome.retries} retries)")
    else:
        console.print(f"[yellow]![/yellow] {path}: server holds "
                      f"{outcome.bytes_written:,} of {outcome.total_length:,} bytes")


@click.group()
@click.version_option(version="1.0.0")
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              default=None, help='Config file (default: ~/.config/vimeo-upload/config.json)')
@click.option('--state-dir', type=click.Path(file_okay=False, path_type=Path),
              default=DEFAULT_STATE_DIR, show_default=True, help='Where upload tickets are kept')
@click.option('-v', '--verbose', is_flag=True, help='Show debug logging')
@click.pass_context
def cli(ctx, config_path, state_dir, verbose):
    """
    Resumable video uploads.

    Uploads large files in verified chunks and picks up where an
    interrupted upload left off.
    """
    setup_logging(verbose, console=console)
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['state_dir'] = state_dir


@cli.command()
@click.pass_context
def init(ctx):
    """
    Create the configuration file.

    Asks for the destination and its credentials, then stores them with the
    access token encrypted.
    """
    console.print(Panel.fit(
        "[bold cyan]Upload Setup[/bold cyan]\n\n"
        "This will create the configuration used by the upload commands.",
        border_style="cyan"
    ))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Option", style="cyan", width=8)
    table.add_column("Backend", style="green")
    table.add_column("Description")
    backends = list(Backend)
    for index, backend in enumerate(backends, start=1):
        table.add_row(f"[{index}]", TransportFactory.get_backend_name(backend),
                      TransportFactory.get_backend_description(backend))
    console.print(table)

    choice = Prompt.ask("Select backend", choices=[str(i) for i in range(1, len(backends) + 1)],
                        default="1")
    backend = backends[int(choice) - 1]

    config = UploadConfig(backend=backend)
    if backend == Backend.VIMEO:
        config.access_token = Prompt.ask("Access token", password=True).strip()
    else:
        config.local_path = Prompt.ask("Store directory", default=config.local_path).strip()

    chunk_mb = Prompt.ask("Chunk size in MB", default=str(config.chunk_size // (1024 * 1024)))
    try:
        config.chunk_size = max(MIN_CHUNK_SIZE, int(float(chunk_mb) * 1024 * 1024))
    except ValueError:
        console.print("[yellow]Invalid chunk size, keeping the default[/yellow]")

    config_path = ctx.obj['config_path'] or default_config_path()
    if config_path.exists() and not Confirm.ask("Existing configuration found. Overwrite?"):
        return

    saved = save_config(config, config_path)
    console.print(f"\n[green]✓[/green] Configuration saved to: {saved}")


@cli.command()
@click.argument('paths', nargs=-1, required=True,
                type=click.Path(exists=True, dir_okay=False))
@click.option('--parallel', default=None, type=click.IntRange(1, MAX_PARALLEL_UPLOADS),
              help='Number of files uploaded at once')
@click.option('--chunk-size', default=None, type=click.IntRange(min=MIN_CHUNK_SIZE),
              help='Bytes per chunk')
@click.pass_context
def upload(ctx, paths, parallel, chunk_size):
    """
    Upload one or more video files.

    The ticket of each file is saved before sending starts, so an
    interrupted upload can be continued with the resume command.
    """
    cancel_event = threading.Event()
    failed = False
    try:
        client = _build_client(ctx, cancel_event, chunk_size=chunk_size, parallel=parallel)
    except UploadError as e:
        console.print(f"[red]❌ {e}[/red]")
        ctx.exit(1)

    with client, _cancel_on_interrupt(cancel_event), _progress() as progress:
        tasks = {
            str(p): progress.add_task(Path(p).name, total=Path(p).stat().st_size)
            for p in paths
        }

        def on_progress(path, update):
            progress.update(tasks[path], completed=update.bytes_uploaded)

        results = client.upload_many(paths, parallel=parallel, progress_callback=on_progress)

    for path in paths:
        result = results[str(path)]
        if isinstance(result, Exception):
            failed = True
            console.print(f"[red]❌ {path}: {result}[/red]")
        else:
            _print_outcome(path, result)
            failed = failed or not result.is_verified_complete

    if failed:
        console.print("[yellow]Run 'resume' on failed files to continue where they stopped.[/yellow]")
        ctx.exit(1)


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def resume(ctx, path):
    """Continue an interrupted upload of PATH using its saved ticket."""
    store = TicketStore(ctx.obj['state_dir'])
    ticket = store.load(path)
    if ticket is None:
        console.print(f"[red]No saved upload ticket for {path}. Use 'upload' instead.[/red]")
        ctx.exit(1)

    cancel_event = threading.Event()
    try:
        with _build_client(ctx, cancel_event) as client, \
                _cancel_on_interrupt(cancel_event), \
                ContentSource.open(path) as source, \
                _progress() as progress:
            task = progress.add_task(source.name, total=source.length())
            outcome = client.resume_upload(
                ticket, source,
                progress_callback=lambda update: progress.update(task, completed=update.bytes_uploaded),
            )
    except SessionExpiredError:
        store.remove(path)
        console.print(f"[red]The upload session for {path} has expired. "
                      "Its saved ticket was removed; run 'upload' to start over.[/red]")
        ctx.exit(1)
    except UploadError as e:
        console.print(f"[red]❌ Resume failed: {e}[/red]")
        ctx.exit(1)

    _print_outcome(path, outcome)


@cli.command()
@click.argument('video_id', type=int)
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def replace(ctx, video_id, path):
    """Replace the source file of video VIDEO_ID with PATH."""
    cancel_event = threading.Event()
    try:
        with _build_client(ctx, cancel_event) as client, \
                _cancel_on_interrupt(cancel_event), \
                ContentSource.open(path) as source, \
                _progress() as progress:
            task = progress.add_task(source.name, total=source.length())
            outcome = client.replace(
                video_id, source,
                progress_callback=lambda update: progress.update(task, completed=update.bytes_uploaded),
            )
    except UploadError as e:
        console.print(f"[red]❌ Replace failed: {e}[/red]")
        ctx.exit(1)

    _print_outcome(path, outcome)


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def verify(ctx, path):
    """Ask the server how much of PATH it holds."""
    ticket = TicketStore(ctx.obj['state_dir']).load(path)
    if ticket is None:
        console.print(f"[red]No saved upload ticket for {path}.[/red]")
        ctx.exit(1)

    size = Path(path).stat().st_size
    try:
        with _build_client(ctx, threading.Event()) as client:
            offset = client.probe.probe(ticket)
    except UploadError as e:
        console.print(f"[red]❌ Verification failed: {e}[/red]")
        ctx.exit(1)

    if offset == size:
        target = ticket.artifact_uri or "(not finalized yet)"
        console.print(f"[green]✓[/green] Server holds all {size:,} bytes {target}")
    else:
        console.print(f"[yellow]Server holds {offset:,} of {size:,} bytes[/yellow]")
        ctx.exit(1)


@cli.command()
@click.argument('video_id', type=int)
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete(ctx, video_id, yes):
    """Delete video VIDEO_ID."""
    if not yes and not Confirm.ask(f"Delete video {video_id}?"):
        return
    try:
        with _build_client(ctx, threading.Event()) as client:
            deleted = client.delete_artifact(video_id)
    except UploadError as e:
        console.print(f"[red]❌ Delete failed: {e}[/red]")
        ctx.exit(1)

    if deleted:
        console.print(f"[green]✓[/green] Deleted video {video_id}")
    else:
        console.print(f"[yellow]Video {video_id} does not exist[/yellow]")


if __name__ == '__main__':
    cli()
