"""Desktop notifications over the freedesktop Notifications D-Bus interface.

A notification is shown once with ``Notify(replaces_id=0)``; the id the
server hands back is then passed as ``replaces_id`` on every later update so
the same bubble is rewritten in place instead of stacking new ones.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from jeepney.io.blocking import DBusConnection, open_dbus_connection
from jeepney.wrappers import DBusAddress, DBusErrorResponse, new_method_call, unwrap_msg
from pydantic import BaseModel

from pomobus.errors import SinkError
from pomobus.models import ServiceConfig

log = logging.getLogger(__name__)

NOTIFICATIONS = DBusAddress(
    "/org/freedesktop/Notifications",
    bus_name="org.freedesktop.Notifications",
    interface="org.freedesktop.Notifications",
)

_NOTIFY_SIGNATURE = "susssasa{sv}i"


class Notification(BaseModel):
    """Handle for one notification bubble."""

    title: str
    body: str
    notification_id: int = 0

    @property
    def shown(self) -> bool:
        return self.notification_id != 0


class NotificationSink(Protocol):
    def create(self, title: str, body: str) -> Notification: ...

    def show(self, notification: Notification) -> Notification: ...

    def update_body(self, notification: Notification, body: str) -> None: ...

    def push_update(self, notification: Notification) -> None: ...

    def close(self) -> None: ...


def _open_session_bus() -> DBusConnection:
    return open_dbus_connection(bus="SESSION")


class DesktopNotifier:
    """Notification sink backed by ``org.freedesktop.Notifications``.

    Holds its own bus connection, opened on first use. Not thread-safe: each
    engine instance gets its own notifier.
    """

    def __init__(
        self,
        app_name: str = "pomobus",
        connect: Callable[[], DBusConnection] = _open_session_bus,
        timeout: float = 5.0,
    ) -> None:
        self.app_name = app_name
        self._connect = connect
        self._timeout = timeout
        self._conn: Optional[DBusConnection] = None

    def _connection(self) -> DBusConnection:
        if self._conn is None:
            try:
                self._conn = self._connect()
            except (OSError, KeyError) as exc:
                raise SinkError(f"Cannot reach the notification server: {exc}") from exc
        return self._conn

    def _notify(self, notification: Notification) -> int:
        msg = new_method_call(
            NOTIFICATIONS,
            "Notify",
            _NOTIFY_SIGNATURE,
            (
                self.app_name,
                notification.notification_id,
                "",
                notification.title,
                notification.body,
                [],
                {},
                -1,
            ),
        )
        try:
            reply = self._connection().send_and_get_reply(msg, timeout=self._timeout)
            (notification_id,) = unwrap_msg(reply)
        except (DBusErrorResponse, TimeoutError, OSError) as exc:
            raise SinkError(f"Notify failed for '{notification.title}': {exc}") from exc
        return notification_id

    def create(self, title: str, body: str) -> Notification:
        return Notification(title=title, body=body)

    def show(self, notification: Notification) -> Notification:
        notification.notification_id = self._notify(notification)
        log.debug("Shown notification %d: %s", notification.notification_id, notification.body)
        return notification

    def update_body(self, notification: Notification, body: str) -> None:
        notification.body = body

    def push_update(self, notification: Notification) -> None:
        if not notification.shown:
            raise SinkError(f"Notification '{notification.title}' was never shown.")
        self._notify(notification)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def notifier_factory(config: ServiceConfig) -> Callable[[], NotificationSink]:
    """Return a callable building one ``DesktopNotifier`` per engine instance."""

    def _build() -> NotificationSink:
        return DesktopNotifier(app_name=config.app_name, timeout=config.call_timeout)

    return _build
