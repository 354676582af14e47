"""Exceptions raised by the service, the engine and the notification sink."""

from __future__ import annotations


class PomobusError(Exception):
    """Base class for all pomobus errors."""


class BindError(PomobusError):
    """The service could not take ownership of its well-known bus name."""


class SinkError(PomobusError):
    """A notification could not be shown or updated."""


class TimerRejected(PomobusError):
    """A ``Start`` call was refused before any engine was spawned."""

    error_name = "Rejected"


class InvalidDuration(TimerRejected):
    error_name = "InvalidDuration"


class TimerAlreadyRunning(TimerRejected):
    error_name = "AlreadyRunning"


class TooManyTimers(TimerRejected):
    error_name = "TooManyTimers"
