"""Client side of the timer service: one method call per invocation."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from jeepney.io.blocking import DBusConnection, open_dbus_connection
from jeepney.wrappers import DBusAddress, DBusErrorResponse, new_method_call, unwrap_msg

from pomobus.models import InstanceInfo, PhaseKind, ServiceConfig

# Everything a call can fail with at the transport level. KeyError comes from
# a missing DBUS_SESSION_BUS_ADDRESS.
TRANSPORT_ERRORS = (DBusErrorResponse, TimeoutError, OSError, KeyError)


def _open_session_bus() -> DBusConnection:
    return open_dbus_connection(bus="SESSION")


def _call(
    config: ServiceConfig,
    method: str,
    signature: Optional[str] = None,
    body: tuple = (),
    connect: Callable[[], DBusConnection] = _open_session_bus,
) -> tuple:
    """Call ``method`` on the timers object and return the reply body.

    Errors are not caught: a missing service comes back from the bus as
    ``org.freedesktop.DBus.Error.ServiceUnknown``, a stuck handler as
    ``TimeoutError``.
    """
    address = DBusAddress(
        config.object_path, bus_name=config.bus_name, interface=config.interface
    )
    conn = connect()
    try:
        reply = conn.send_and_get_reply(
            new_method_call(address, method, signature, body),
            timeout=config.call_timeout,
        )
        return unwrap_msg(reply)
    finally:
        conn.close()


def start_timer(
    minutes: int,
    config: ServiceConfig,
    connect: Callable[[], DBusConnection] = _open_session_bus,
) -> None:
    """Ask the service to start a cycle. Returns once the call is acknowledged."""
    _call(config, "Start", "t", (minutes,), connect=connect)


def stop_timer(
    instance_id: str,
    config: ServiceConfig,
    connect: Callable[[], DBusConnection] = _open_session_bus,
) -> bool:
    (stopped,) = _call(config, "Stop", "s", (instance_id,), connect=connect)
    return bool(stopped)


def stop_all_timers(
    config: ServiceConfig,
    connect: Callable[[], DBusConnection] = _open_session_bus,
) -> int:
    (count,) = _call(config, "StopAll", connect=connect)
    return int(count)


def list_timers(
    config: ServiceConfig,
    connect: Callable[[], DBusConnection] = _open_session_bus,
) -> list[InstanceInfo]:
    (rows,) = _call(config, "List", connect=connect)
    return [
        InstanceInfo(
            instance_id=instance_id,
            phase=PhaseKind(phase),
            work_minutes=work_minutes,
            minutes_left=minutes_left,
            started_at=datetime.fromisoformat(started_at),
        )
        for instance_id, phase, work_minutes, minutes_left, started_at in rows
    ]
