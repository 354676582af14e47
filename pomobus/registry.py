"""Registry of running engine instances, one background thread each."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from pomobus.errors import InvalidDuration, SinkError, TimerAlreadyRunning, TooManyTimers
from pomobus.models import InstanceInfo, OverlapPolicy, ServiceConfig, StartRequest
from pomobus.notify import NotificationSink
from pomobus.timer import EventTicker, Ticker, TimerEngine

log = logging.getLogger(__name__)


class EngineInstance:
    """One spawned work/break cycle and the thread that runs it."""

    def __init__(
        self,
        instance_id: str,
        engine: TimerEngine,
        sink: NotificationSink,
        on_exit: Callable[[EngineInstance], None],
    ) -> None:
        self.instance_id = instance_id
        self.engine = engine
        self.sink = sink
        self.stop_event = threading.Event()
        self.started_at = datetime.now()
        self._on_exit = on_exit
        self._thread = threading.Thread(
            target=self._run, name=f"pomobus-{instance_id}", daemon=True
        )

    def info(self) -> InstanceInfo:
        return InstanceInfo(
            instance_id=self.instance_id,
            work_minutes=self.engine.work_minutes,
            phase=self.engine.current_phase.kind,
            minutes_left=self.engine.minutes_left,
            started_at=self.started_at,
        )

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self.stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        try:
            self.engine.run(self.stop_event)
        except SinkError as exc:
            # Fatal to this instance only.
            log.error("Timer %s aborted: %s", self.instance_id, exc)
        finally:
            try:
                self.sink.close()
            except OSError:
                log.debug("Timer %s: closing notifier failed", self.instance_id, exc_info=True)
            finally:
                self._on_exit(self)


class TimerRegistry:
    """Spawns, tracks and stops engine instances.

    ``start`` never waits on an engine: it applies the overlap policy, launches
    the instance thread and returns its id.
    """

    def __init__(
        self,
        config: ServiceConfig,
        sink_factory: Callable[[], NotificationSink],
        ticker: Optional[Ticker] = None,
    ) -> None:
        self.config = config
        self._sink_factory = sink_factory
        self._ticker = ticker or EventTicker()
        self._instances: dict[str, EngineInstance] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def start(self, minutes: int) -> str:
        """Spawn a new cycle with ``minutes`` of work per phase."""
        try:
            request = StartRequest(minutes=minutes)
        except ValidationError as exc:
            raise InvalidDuration(f"Invalid work duration: {minutes} minutes") from exc

        with self._lock:
            self._admit()
            sink = self._sink_factory()
            engine = TimerEngine(
                request.minutes,
                sink,
                self._ticker,
                break_minutes=self.config.break_minutes,
                tick_seconds=self.config.tick_seconds,
            )
            instance = EngineInstance(uuid.uuid4().hex[:12], engine, sink, self._forget)
            self._instances[instance.instance_id] = instance

        instance.start()
        log.info("Timer %s started: %d minutes of work.", instance.instance_id, request.minutes)
        return instance.instance_id

    def _admit(self) -> None:
        """Apply the overlap policy. Caller holds the lock."""
        policy = self.config.overlap_policy
        if self._instances and policy == OverlapPolicy.REJECT:
            raise TimerAlreadyRunning(
                f"{len(self._instances)} timer(s) already running; stop them first."
            )
        if policy == OverlapPolicy.REPLACE:
            for instance in self._instances.values():
                log.info("Timer %s replaced.", instance.instance_id)
                instance.stop()
            self._instances.clear()
        limit = self.config.max_instances
        if limit is not None and len(self._instances) >= limit:
            raise TooManyTimers(f"Already running the maximum of {limit} timer(s).")

    def _forget(self, instance: EngineInstance) -> None:
        with self._lock:
            if self._instances.get(instance.instance_id) is instance:
                del self._instances[instance.instance_id]

    def get(self, instance_id: str) -> Optional[EngineInstance]:
        with self._lock:
            return self._instances.get(instance_id)

    def list(self) -> list[InstanceInfo]:
        with self._lock:
            instances = list(self._instances.values())
        return [instance.info() for instance in instances]

    def stop(self, instance_id: str) -> bool:
        """Signal one instance to stop. Returns False for unknown ids."""
        with self._lock:
            instance = self._instances.pop(instance_id, None)
        if instance is None:
            return False
        instance.stop()
        log.info("Timer %s stopped.", instance_id)
        return True

    def stop_all(self) -> int:
        with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()
        for instance in instances:
            instance.stop()
        if instances:
            log.info("Stopped %d timer(s).", len(instances))
        return len(instances)
