"""Work/break cycle engine: phase state machine and minute countdown."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from pydantic import ValidationError

from pomobus.errors import InvalidDuration
from pomobus.models import (
    BREAK_TEMPLATE,
    DEFAULT_BREAK_MINUTES,
    WORK_TEMPLATE,
    NotificationTemplate,
    Phase,
    PhaseKind,
)
from pomobus.notify import Notification, NotificationSink

log = logging.getLogger(__name__)

_TEMPLATES: dict[PhaseKind, NotificationTemplate] = {
    PhaseKind.WORK: WORK_TEMPLATE,
    PhaseKind.BREAK: BREAK_TEMPLATE,
}


class Ticker(Protocol):
    def wait(self, seconds: float, stop: threading.Event) -> bool:
        """Block for one tick. Returns True if ``stop`` was set meanwhile."""
        ...


class EventTicker:
    """Wall-clock ticker that wakes early when the stop signal is set."""

    def wait(self, seconds: float, stop: threading.Event) -> bool:
        return stop.wait(seconds)


def next_phase(kind: PhaseKind) -> PhaseKind:
    """Work is always followed by a break, and a break by work."""
    return PhaseKind.BREAK if kind == PhaseKind.WORK else PhaseKind.WORK


def build_phase(kind: PhaseKind, minutes: int) -> Phase:
    """Build a phase, refusing zero or out-of-range durations."""
    try:
        return Phase(kind=kind, duration_minutes=minutes, template=_TEMPLATES[kind])
    except ValidationError as exc:
        raise InvalidDuration(f"Invalid {kind.value} duration: {minutes} minutes") from exc


class TimerEngine:
    """Runs Work(N) -> Break -> Work(N) -> ... until stopped.

    The countdown of an N-minute phase shows the notification with N minutes
    left, then waits one tick before each of the N+1 updates N, N-1, ..., 0.
    Any ``SinkError`` from the sink propagates and ends the run.
    """

    def __init__(
        self,
        work_minutes: int,
        sink: NotificationSink,
        ticker: Optional[Ticker] = None,
        *,
        break_minutes: int = DEFAULT_BREAK_MINUTES,
        tick_seconds: float = 60.0,
    ) -> None:
        self.phases: dict[PhaseKind, Phase] = {
            PhaseKind.WORK: build_phase(PhaseKind.WORK, work_minutes),
            PhaseKind.BREAK: build_phase(PhaseKind.BREAK, break_minutes),
        }
        self.sink = sink
        self.ticker = ticker or EventTicker()
        self.tick_seconds = tick_seconds

        self.current_phase = self.phases[PhaseKind.WORK]
        self.elapsed_minutes = 0
        self.minutes_left = self.current_phase.duration_minutes
        self.notification: Optional[Notification] = None
        self.completed_phases = 0

    @property
    def work_minutes(self) -> int:
        return self.phases[PhaseKind.WORK].duration_minutes

    def run(self, stop: threading.Event) -> int:
        """Cycle through phases until ``stop`` is set. Returns completed phases."""
        kind = PhaseKind.WORK
        while not stop.is_set():
            if not self.run_phase(self.phases[kind], stop):
                break
            self.completed_phases += 1
            kind = next_phase(kind)
        log.debug("Engine stopped after %d completed phases.", self.completed_phases)
        return self.completed_phases

    def run_phase(self, phase: Phase, stop: threading.Event) -> bool:
        """Count one phase down. Returns False if stopped part-way."""
        self.current_phase = phase
        self.elapsed_minutes = 0
        self.minutes_left = phase.duration_minutes

        notification = self.sink.create(phase.title, phase.body(phase.duration_minutes))
        self.notification = self.sink.show(notification)
        log.info("%s phase started: %d minutes.", phase.kind.value.capitalize(), phase.duration_minutes)

        for elapsed in range(phase.duration_minutes + 1):
            if self.ticker.wait(self.tick_seconds, stop):
                return False
            self.elapsed_minutes = elapsed
            self.minutes_left = phase.duration_minutes - elapsed
            self.sink.update_body(self.notification, phase.body(self.minutes_left))
            self.sink.push_update(self.notification)
        return True
