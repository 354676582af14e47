"""Pydantic models — single source of truth for all data types."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Largest value a D-Bus ``t`` (uint64) argument can carry.
UINT64_MAX = 2**64 - 1

DEFAULT_WORK_MINUTES = 25
DEFAULT_BREAK_MINUTES = 2


class PhaseKind(str, enum.Enum):
    """The two phases of a pomodoro cycle."""

    WORK = "work"
    BREAK = "break"


class NotificationTemplate(BaseModel):
    """Title and body text used for a phase's notification."""

    model_config = ConfigDict(frozen=True)

    title: str
    body_template: str = "{minutes} minutes left"

    def render(self, minutes: int) -> str:
        return self.body_template.format(minutes=minutes)


WORK_TEMPLATE = NotificationTemplate(title="Pomodoro Timer")
BREAK_TEMPLATE = NotificationTemplate(title="Time's up! Take a break.")


class Phase(BaseModel):
    """One timed segment of the cycle. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    kind: PhaseKind
    duration_minutes: int = Field(ge=1, le=UINT64_MAX)
    template: NotificationTemplate

    @property
    def title(self) -> str:
        return self.template.title

    def body(self, minutes_left: int) -> str:
        return self.template.render(minutes_left)


class StartRequest(BaseModel):
    """Input model for a ``Start`` call coming off the bus."""

    minutes: int = Field(ge=1, le=UINT64_MAX)


class InstanceInfo(BaseModel):
    """Read-only snapshot of a running engine instance."""

    instance_id: str
    work_minutes: int = Field(ge=1)
    phase: PhaseKind = PhaseKind.WORK
    minutes_left: int = Field(ge=0)
    started_at: datetime = Field(default_factory=datetime.now)


class OverlapPolicy(str, enum.Enum):
    """What a ``Start`` call does while other timers are running."""

    COEXIST = "coexist"
    REPLACE = "replace"
    REJECT = "reject"


class ServiceConfig(BaseModel):
    """Service configuration (persisted to ~/.config/pomobus/config.json)."""

    bus_name: str = "com.example.Pomodoro"
    object_path: str = "/com/example/Pomodoro/Timers"
    interface: str = "com.example.Pomodoro"
    call_timeout_ms: int = Field(default=5000, gt=0)
    default_work_minutes: int = Field(default=DEFAULT_WORK_MINUTES, ge=1)
    break_minutes: int = Field(default=DEFAULT_BREAK_MINUTES, ge=1)
    overlap_policy: OverlapPolicy = OverlapPolicy.COEXIST
    max_instances: Optional[int] = Field(default=None, ge=1)
    tick_seconds: float = Field(default=60.0, gt=0)
    app_name: str = "pomobus"

    @property
    def call_timeout(self) -> float:
        """Call timeout in seconds."""
        return self.call_timeout_ms / 1000
