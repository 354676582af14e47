"""D-Bus service exposing the timer registry on the session bus."""

from __future__ import annotations

import logging
from typing import Any, Callable, NamedTuple, Optional

from jeepney.bus_messages import message_bus
from jeepney.io.blocking import DBusConnection, open_dbus_connection
from jeepney.low_level import HeaderFields, Message, MessageFlag, MessageType
from jeepney.wrappers import DBusErrorResponse, new_error, new_method_return, unwrap_msg

from pomobus.errors import BindError, TimerRejected
from pomobus.models import ServiceConfig
from pomobus.registry import TimerRegistry

log = logging.getLogger(__name__)

# RequestName flags and replies (D-Bus specification).
NAME_FLAG_DO_NOT_QUEUE = 4
REPLY_PRIMARY_OWNER = 1
REPLY_ALREADY_OWNER = 4

INTROSPECTABLE = "org.freedesktop.DBus.Introspectable"
PEER = "org.freedesktop.DBus.Peer"


class Method(NamedTuple):
    args: tuple[tuple[str, str], ...]
    outs: tuple[tuple[str, str], ...]
    handler: Callable[..., tuple]

    @property
    def in_signature(self) -> str:
        return "".join(sig for _, sig in self.args)

    @property
    def out_signature(self) -> str:
        return "".join(sig for _, sig in self.outs)


def _open_session_bus() -> DBusConnection:
    return open_dbus_connection(bus="SESSION")


class PomodoroService:
    """Owns the well-known bus name and answers method calls on one object."""

    def __init__(
        self,
        config: ServiceConfig,
        registry: TimerRegistry,
        connect: Callable[[], DBusConnection] = _open_session_bus,
    ) -> None:
        self.config = config
        self.registry = registry
        self._connect = connect
        self._conn: Optional[DBusConnection] = None
        self.methods: dict[str, Method] = {
            "Start": Method((("minutes", "t"),), (), self._start),
            "Stop": Method((("instance_id", "s"),), (("stopped", "b"),), self._stop),
            "StopAll": Method((), (("count", "u"),), self._stop_all),
            "List": Method((), (("timers", "a(sstts)"),), self._list),
        }

    # ----- Lifecycle -----
    def bind(self) -> None:
        """Connect to the session bus and take the well-known name."""
        name = self.config.bus_name
        try:
            self._conn = self._connect()
        except (OSError, KeyError) as exc:
            raise BindError(f"Cannot connect to the session bus: {exc}") from exc

        try:
            reply = self._conn.send_and_get_reply(
                message_bus.RequestName(name, NAME_FLAG_DO_NOT_QUEUE),
                timeout=self.config.call_timeout,
            )
            (code,) = unwrap_msg(reply)
        except (DBusErrorResponse, TimeoutError, OSError) as exc:
            self._close_connection()
            raise BindError(f"Could not request bus name {name}: {exc}") from exc

        if code not in (REPLY_PRIMARY_OWNER, REPLY_ALREADY_OWNER):
            self._close_connection()
            raise BindError(f"Bus name {name} is already owned by another process.")
        log.info("Acquired bus name %s at %s.", name, self.config.object_path)

    def serve_forever(self) -> None:
        """Dispatch incoming calls until the connection drops."""
        if self._conn is None:
            raise BindError("Service is not bound; call bind() first.")
        while True:
            msg = self._conn.receive()
            reply = self.dispatch(msg)
            if reply is not None:
                self._conn.send(reply)

    def close(self) -> None:
        stopped = self.registry.stop_all()
        log.debug("Shutdown stopped %d timer(s).", stopped)
        if self._conn is not None:
            try:
                self._conn.send(message_bus.ReleaseName(self.config.bus_name))
            except OSError:
                log.debug("Could not release %s", self.config.bus_name, exc_info=True)
            self._close_connection()

    def _close_connection(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ----- Dispatch -----
    def dispatch(self, msg: Message) -> Optional[Message]:
        """Build the reply for one incoming message (None if no reply is due)."""
        header = msg.header
        if header.message_type != MessageType.method_call:
            return None
        reply = self._reply_to(msg)
        if header.flags & MessageFlag.no_reply_expected:
            return None
        return reply

    def _reply_to(self, msg: Message) -> Message:
        fields = msg.header.fields
        path = fields.get(HeaderFields.path)
        interface = fields.get(HeaderFields.interface)
        member = fields.get(HeaderFields.member)
        signature = fields.get(HeaderFields.signature, "")

        if interface == PEER and member == "Ping":
            return new_method_return(msg)
        if path != self.config.object_path:
            return self._error(msg, "org.freedesktop.DBus.Error.UnknownObject", f"No object at {path}")
        if interface == INTROSPECTABLE and member == "Introspect":
            return new_method_return(msg, "s", (self.introspect(),))
        if interface not in (None, self.config.interface):
            return self._error(msg, "org.freedesktop.DBus.Error.UnknownInterface", f"Unknown interface {interface}")

        method = self.methods.get(member)
        if method is None:
            return self._error(msg, "org.freedesktop.DBus.Error.UnknownMethod", f"Unknown method {member}")
        if signature != method.in_signature:
            return self._error(
                msg,
                "org.freedesktop.DBus.Error.InvalidArgs",
                f"{member} expects signature '{method.in_signature}', got '{signature}'",
            )

        try:
            body = method.handler(*msg.body)
        except TimerRejected as exc:
            log.warning("%s rejected: %s", member, exc)
            return self._error(msg, f"{self.config.interface}.Error.{exc.error_name}", str(exc))
        except Exception as exc:
            log.exception("%s failed", member)
            return self._error(msg, "org.freedesktop.DBus.Error.Failed", str(exc))
        return new_method_return(msg, method.out_signature or None, body)

    @staticmethod
    def _error(msg: Message, name: str, text: str) -> Message:
        return new_error(msg, name, "s", (text,))

    # ----- Handlers -----
    def _start(self, minutes: int) -> tuple:
        self.registry.start(minutes)
        return ()

    def _stop(self, instance_id: str) -> tuple:
        return (self.registry.stop(instance_id),)

    def _stop_all(self) -> tuple:
        return (self.registry.stop_all(),)

    def _list(self) -> tuple:
        rows: list[tuple[Any, ...]] = [
            (
                info.instance_id,
                info.phase.value,
                info.work_minutes,
                info.minutes_left,
                info.started_at.isoformat(timespec="seconds"),
            )
            for info in self.registry.list()
        ]
        return (rows,)

    def introspect(self) -> str:
        """Introspection XML for the timers object."""
        lines = [
            '<!DOCTYPE node PUBLIC "-//freedesktop//DTD D-BUS Object Introspection 1.0//EN"',
            ' "http://www.freedesktop.org/standards/dbus/1.0/introspect.dtd">',
            "<node>",
            f'  <interface name="{self.config.interface}">',
        ]
        for name, method in self.methods.items():
            lines.append(f'    <method name="{name}">')
            for arg, sig in method.args:
                lines.append(f'      <arg name="{arg}" type="{sig}" direction="in"/>')
            for arg, sig in method.outs:
                lines.append(f'      <arg name="{arg}" type="{sig}" direction="out"/>')
            lines.append("    </method>")
        lines += [
            "  </interface>",
            f'  <interface name="{INTROSPECTABLE}">',
            '    <method name="Introspect">',
            '      <arg name="xml_data" type="s" direction="out"/>',
            "    </method>",
            "  </interface>",
            "</node>",
        ]
        return "\n".join(lines)
