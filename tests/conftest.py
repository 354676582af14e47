"""Shared fakes: a recording notification sink and clocks that never sleep."""

from __future__ import annotations

import threading
import time
from typing import Optional

import pytest

from pomobus.errors import SinkError
from pomobus.models import ServiceConfig
from pomobus.notify import Notification
from pomobus.registry import TimerRegistry


class RecordingSink:
    """Notification sink that records every show and pushed update."""

    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.events: list[tuple[str, str, str]] = []
        self.fail_on = fail_on
        self.closed = False
        self._next_id = 1

    def create(self, title: str, body: str) -> Notification:
        return Notification(title=title, body=body)

    def show(self, notification: Notification) -> Notification:
        if self.fail_on == "show":
            raise SinkError("notification server unavailable")
        notification.notification_id = self._next_id
        self._next_id += 1
        self.events.append(("show", notification.title, notification.body))
        return notification

    def update_body(self, notification: Notification, body: str) -> None:
        notification.body = body

    def push_update(self, notification: Notification) -> None:
        if self.fail_on == "push":
            raise SinkError("notification server went away")
        self.events.append(("update", notification.title, notification.body))

    def close(self) -> None:
        self.closed = True

    def bodies(self, action: str) -> list[str]:
        return [body for kind, _, body in self.events if kind == action]


class SinkFactory:
    """Builds one RecordingSink per engine instance and keeps them all."""

    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.fail_on = fail_on
        self.sinks: list[RecordingSink] = []

    def __call__(self) -> RecordingSink:
        sink = RecordingSink(self.fail_on)
        self.sinks.append(sink)
        return sink


class FakeTicker:
    """Returns immediately; sets the stop signal once ``limit`` ticks have passed."""

    def __init__(self, limit: Optional[int] = None) -> None:
        self.limit = limit
        self.waits: list[float] = []
        self._counts: dict[int, int] = {}
        self._lock = threading.Lock()

    def wait(self, seconds: float, stop: threading.Event) -> bool:
        with self._lock:
            self.waits.append(seconds)
            count = self._counts.get(id(stop), 0) + 1
            self._counts[id(stop)] = count
        if self.limit is not None and count > self.limit:
            stop.set()
        return stop.is_set()


class BarrierTicker(FakeTicker):
    """Every tick waits until ``parties`` engines are ticking at the same time."""

    def __init__(self, parties: int, limit: int) -> None:
        super().__init__(limit)
        self.barrier = threading.Barrier(parties, timeout=5)

    def wait(self, seconds: float, stop: threading.Event) -> bool:
        if not stop.is_set():
            self.barrier.wait()
        return super().wait(seconds, stop)


def wait_idle(registry: TimerRegistry, timeout: float = 5.0) -> None:
    """Block until every instance thread has finished and left the registry."""
    deadline = time.monotonic() + timeout
    while len(registry) and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(registry) == 0, "timers still running"


@pytest.fixture()
def config() -> ServiceConfig:
    return ServiceConfig()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def sink_factory() -> SinkFactory:
    return SinkFactory()
