"""
unitsync CLI - Keep systemd units in sync with a directory of unit files.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .daemon import UnitSyncDaemon
from .errors import UnitSyncError
from .fingerprint import fingerprint, fingerprint_if_exists, is_editor_artifact
from .reconciler import Reconciler
from .settings import UnitSyncSettings, format_duration
from .systemd import Systemctl

# Setup
app = typer.Typer(
    name="unitsync",
    help="Reconcile systemd units with a directory of unit files",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

_SRC_HELP = "Path to directory containing your unit files"
_DEST_HELP = "Path to systemd's unit file directory"


def configure_logging(log_level: str = "INFO") -> None:
    """Configure logging for the given level name."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_settings(**overrides: Any) -> UnitSyncSettings:
    """Build settings from env/.env with command-line overrides on top.

    Raises:
        SystemExit: If a value fails validation
    """
    given: Dict[str, Any] = {k: v for k, v in overrides.items() if v is not None}
    try:
        return UnitSyncSettings(**given)
    except ValidationError as e:
        console.print("[bold red]✗ Invalid configuration:[/bold red]")
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            console.print(f"  - {field}: {error['msg']}")
        raise typer.Exit(code=2)


def _create_command_panel(title: str, color: str, settings: UnitSyncSettings) -> Panel:
    return Panel.fit(
        f"[bold {color}]{title}[/bold {color}]\n"
        f"Source: {settings.src}\n"
        f"Destination: {settings.dest}",
        border_style=color,
    )


@app.command()
def run(
    src: Optional[Path] = typer.Option(None, "--src", help=_SRC_HELP),
    dest: Optional[Path] = typer.Option(None, "--dest", help=_DEST_HELP),
    resync: Optional[str] = typer.Option(
        None, "--resync", help="How often to check for unit file consistency (e.g. 1h)"
    ),
    retry: Optional[str] = typer.Option(
        None, "--retry", help="How often to retry failed operations (e.g. 1s)"
    ),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", help="Timeout for systemctl operations (e.g. 10s)"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    """Watch the source directory and keep units reconciled until stopped."""
    settings = _load_settings(
        src=src, dest=dest, resync=resync, retry=retry, timeout=timeout, log_level=log_level
    )
    configure_logging(settings.log_level)
    console.print(_create_command_panel("unitsync", "blue", settings))
    console.print(
        f"[dim]resync {format_duration(settings.resync)}, "
        f"retry {format_duration(settings.retry)}, "
        f"timeout {format_duration(settings.timeout)}. Press Ctrl+C to stop[/dim]"
    )

    daemon = UnitSyncDaemon(settings)
    try:
        daemon.run()
    except (UnitSyncError, OSError) as e:
        console.print(f"\n[bold red]✗ unitsync stopped:[/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print("[green]unitsync stopped[/green]")


@app.command()
def sync(
    src: Optional[Path] = typer.Option(None, "--src", help=_SRC_HELP),
    dest: Optional[Path] = typer.Option(None, "--dest", help=_DEST_HELP),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", help="Timeout for systemctl operations (e.g. 10s)"
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
):
    """Run a single reconciliation pass and exit."""
    settings = _load_settings(src=src, dest=dest, timeout=timeout, log_level=log_level)
    configure_logging(settings.log_level)
    console.print(_create_command_panel("unitsync sync", "cyan", settings))

    reconciler = Reconciler(
        settings.src,
        settings.dest,
        Systemctl(timeout=settings.timeout, binary=settings.systemctl),
    )
    converged = reconciler.sync()
    result = reconciler.last_result

    if result.actions:
        console.print("\n[bold]Actions:[/bold]")
        for action, unit in result.actions:
            console.print(f"  {action}: {unit}")

    if converged:
        console.print("\n[bold green]✓ Units in sync[/bold green]")
        return

    console.print("\n[bold red]✗ Sync failed:[/bold red]")
    for error in result.errors:
        console.print(f"  • {escape(f'[{error.kind.value}]')} {escape(str(error))}")
    raise typer.Exit(code=1)


@app.command()
def status(
    src: Optional[Path] = typer.Option(None, "--src", help=_SRC_HELP),
    dest: Optional[Path] = typer.Option(None, "--dest", help=_DEST_HELP),
):
    """Compare source and destination unit files without touching systemd."""
    settings = _load_settings(src=src, dest=dest)

    try:
        names = sorted(
            p.name for p in settings.src.iterdir()
            if p.is_file() and not is_editor_artifact(p.name)
        )
    except OSError as e:
        console.print(f"[bold red]✗ Cannot list {settings.src}:[/bold red] {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"{settings.src} → {settings.dest}")
    table.add_column("Unit", style="bold")
    table.add_column("Fingerprint", style="dim")
    table.add_column("State")

    for name in names:
        try:
            checksum = fingerprint(settings.src / name)
            current = fingerprint_if_exists(settings.dest / name)
        except OSError as e:
            table.add_row(name, "", f"[red]unreadable: {e.strerror or e}[/red]")
            continue
        if current is None:
            label = "[yellow]missing[/yellow]"
        elif current == checksum:
            label = "[green]in sync[/green]"
        else:
            label = "[yellow]pending[/yellow]"
        table.add_row(name, checksum[:12], label)

    if not names:
        console.print(f"[dim]No unit files in {settings.src}[/dim]")
        return
    console.print(table)


@app.command()
def version():
    """Show unitsync version."""
    from . import __version__

    console.print(f"unitsync version: [bold]{__version__}[/bold]")


if __name__ == "__main__":
    app()
