"""pomobus CLI -- a Pomodoro timer service on the D-Bus session bus."""

from __future__ import annotations

from typing import Optional

import typer
from rich.markup import escape

from pomobus import client, display
from pomobus import config as cfg
from pomobus.errors import BindError
from pomobus.models import UINT64_MAX, OverlapPolicy

app = typer.Typer(
    name="pomobus",
    help="Start Pomodoro work/break cycles that run in a background service.",
    no_args_is_help=True,
)


def _fail(message: str, exc: BaseException) -> None:
    display.print_warning(f"{message}: {escape(str(exc))}")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@app.command()
def server(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output"),
) -> None:
    """Run the timer service until interrupted."""
    from pomobus.notify import notifier_factory
    from pomobus.registry import TimerRegistry
    from pomobus.service import PomodoroService

    display.setup_logging(verbose)
    config = cfg.load_config()
    registry = TimerRegistry(config, notifier_factory(config))
    service = PomodoroService(config, registry)

    try:
        service.bind()
    except BindError as exc:
        _fail("Could not start the service", exc)

    display.print_info(f"Serving {config.bus_name} at {config.object_path}")
    try:
        service.serve_forever()
    except KeyboardInterrupt:
        display.print_info("Shutting down.")
    finally:
        service.close()


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------


@app.command()
def start(
    time: Optional[int] = typer.Option(
        None, "--time", "-t", min=0, max=UINT64_MAX,
        help="Work duration in minutes (default 25)",
    ),
) -> None:
    """Start a work/break cycle on the running service."""
    config = cfg.load_config()
    minutes = time if time is not None else config.default_work_minutes
    try:
        client.start_timer(minutes, config)
    except client.TRANSPORT_ERRORS as exc:
        _fail("Could not start timer", exc)
    display.print_success(f"Pomodoro started for {minutes} minutes.")


@app.command()
def stop(
    instance_id: Optional[str] = typer.Argument(None, help="ID of the timer to stop"),
    all_timers: bool = typer.Option(False, "--all", "-a", help="Stop every running timer"),
) -> None:
    """Stop a running timer."""
    config = cfg.load_config()
    if all_timers:
        try:
            count = client.stop_all_timers(config)
        except client.TRANSPORT_ERRORS as exc:
            _fail("Could not stop timers", exc)
        display.print_success(f"Stopped {count} timer{'s' if count != 1 else ''}.")
        return

    if instance_id is None:
        display.print_info("Give a timer ID or use --all.")
        raise typer.Exit(1)

    try:
        stopped = client.stop_timer(instance_id, config)
    except client.TRANSPORT_ERRORS as exc:
        _fail("Could not stop timer", exc)
    if not stopped:
        display.print_warning(f"Timer {instance_id} not found.")
        raise typer.Exit(1)
    display.print_success(f"Stopped timer {instance_id}.")


@app.command(name="list")
def list_cmd() -> None:
    """List the timers running on the service."""
    config = cfg.load_config()
    try:
        timers = client.list_timers(config)
    except client.TRANSPORT_ERRORS as exc:
        _fail("Could not list timers", exc)
    display.print_timer_list(timers)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@app.command()
def config(
    policy: Optional[OverlapPolicy] = typer.Option(
        None, "--policy", help="What Start does while timers run: coexist, replace, reject",
    ),
    work_minutes: Optional[int] = typer.Option(
        None, "--work-minutes", min=1, help="Default work duration for 'start'",
    ),
    max_instances: Optional[int] = typer.Option(
        None, "--max-instances", min=1, help="Cap on concurrently running timers",
    ),
    reset: bool = typer.Option(False, "--reset", help="Reset to defaults"),
    show: bool = typer.Option(False, "--show", help="Show current config"),
) -> None:
    """Configure the timer service."""
    changes: dict[str, object] = {}
    if policy is not None:
        changes["overlap_policy"] = policy
    if work_minutes is not None:
        changes["default_work_minutes"] = work_minutes
    if max_instances is not None:
        changes["max_instances"] = max_instances

    if changes:
        cfg.update_config(**changes)
        display.print_success("Config saved. Restart the service to apply it.")
    elif reset:
        cfg.reset_config()
        display.print_success("Reset to default config.")
    elif show:
        display.print_config(cfg.load_config())
    else:
        display.print_info("Use --policy, --work-minutes, --max-instances, --reset, or --show.")
