"""Rich terminal formatting helpers."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from pomobus.models import InstanceInfo, PhaseKind, ServiceConfig

console = Console()
err_console = Console(stderr=True)

_PHASE_STYLE: dict[PhaseKind, str] = {
    PhaseKind.WORK: "bold cyan",
    PhaseKind.BREAK: "green",
}


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
        force=True,
    )


def print_timer_list(timers: list[InstanceInfo], title: str = "Timers") -> None:
    """Print running timers in a panel."""
    if not timers:
        console.print(Panel("No timers running.", title=title, border_style="dim"))
        return

    table = Table(box=None, pad_edge=False)
    table.add_column("id")
    table.add_column("phase")
    table.add_column("work", justify="right")
    table.add_column("left", justify="right")
    table.add_column("started")

    for info in timers:
        table.add_row(
            info.instance_id,
            info.phase.value,
            f"{info.work_minutes} min",
            f"{info.minutes_left} min",
            info.started_at.strftime("%H:%M"),
            style=_PHASE_STYLE[info.phase],
        )

    console.print(Panel(table, title=title, border_style="blue"))


def print_config(config: ServiceConfig) -> None:
    """Print the effective configuration."""
    lines = [f"{key}: {value}" for key, value in config.model_dump(mode="json").items()]
    console.print(Panel("\n".join(lines), title="Config", border_style="green"))


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]{message}[/green]")


def print_info(message: str) -> None:
    """Print an informational message."""
    console.print(f"[blue]{message}[/blue]")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]{message}[/yellow]")
