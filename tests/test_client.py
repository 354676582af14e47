"""Tests for the IPC client."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from jeepney.low_level import HeaderFields
from jeepney.wrappers import DBusErrorResponse, new_error, new_method_return

from pomobus import client
from pomobus.models import PhaseKind, ServiceConfig


def _connection(reply) -> MagicMock:
    """Fake bus connection answering every call with ``reply(msg)``."""
    conn = MagicMock()
    conn.send_and_get_reply.side_effect = lambda msg, timeout=None: reply(msg)
    return conn


class TestStartTimer:
    def test_sends_start(self, config: ServiceConfig) -> None:
        conn = _connection(lambda msg: new_method_return(msg))
        client.start_timer(25, config, connect=lambda: conn)

        msg = conn.send_and_get_reply.call_args.args[0]
        fields = msg.header.fields
        assert fields[HeaderFields.destination] == "com.example.Pomodoro"
        assert fields[HeaderFields.path] == "/com/example/Pomodoro/Timers"
        assert fields[HeaderFields.interface] == "com.example.Pomodoro"
        assert fields[HeaderFields.member] == "Start"
        assert fields[HeaderFields.signature] == "t"
        assert msg.body == (25,)
        assert conn.send_and_get_reply.call_args.kwargs["timeout"] == 5.0
        conn.close.assert_called_once()

    def test_service_not_running(self, config: ServiceConfig) -> None:
        """The bus answers for an unowned name straight away."""
        conn = _connection(
            lambda msg: new_error(
                msg,
                "org.freedesktop.DBus.Error.ServiceUnknown",
                "s",
                ("The name com.example.Pomodoro was not provided by any .service files",),
            )
        )
        with pytest.raises(DBusErrorResponse) as excinfo:
            client.start_timer(25, config, connect=lambda: conn)
        assert excinfo.value.name == "org.freedesktop.DBus.Error.ServiceUnknown"
        conn.close.assert_called_once()

    def test_timeout_propagates(self, config: ServiceConfig) -> None:
        conn = MagicMock()
        conn.send_and_get_reply.side_effect = TimeoutError
        with pytest.raises(TimeoutError):
            client.start_timer(25, config, connect=lambda: conn)
        conn.close.assert_called_once()

    def test_no_bus(self, config: ServiceConfig) -> None:
        def connect():
            raise ConnectionRefusedError

        with pytest.raises(OSError):
            client.start_timer(25, config, connect=connect)

    def test_rejection_propagates(self, config: ServiceConfig) -> None:
        conn = _connection(
            lambda msg: new_error(
                msg, "com.example.Pomodoro.Error.InvalidDuration", "s", ("Invalid work duration",)
            )
        )
        with pytest.raises(DBusErrorResponse):
            client.start_timer(0, config, connect=lambda: conn)

    def test_custom_timeout(self) -> None:
        config = ServiceConfig(call_timeout_ms=250)
        conn = _connection(lambda msg: new_method_return(msg))
        client.start_timer(5, config, connect=lambda: conn)
        assert conn.send_and_get_reply.call_args.kwargs["timeout"] == 0.25


class TestOtherCalls:
    def test_stop_timer(self, config: ServiceConfig) -> None:
        conn = _connection(lambda msg: new_method_return(msg, "b", (True,)))
        assert client.stop_timer("abc", config, connect=lambda: conn) is True
        assert conn.send_and_get_reply.call_args.args[0].body == ("abc",)

    def test_stop_all(self, config: ServiceConfig) -> None:
        conn = _connection(lambda msg: new_method_return(msg, "u", (3,)))
        assert client.stop_all_timers(config, connect=lambda: conn) == 3

    def test_list_timers(self, config: ServiceConfig) -> None:
        rows = [("abc", "break", 25, 1, "2024-05-01T10:30:00")]
        conn = _connection(lambda msg: new_method_return(msg, "a(sstts)", (rows,)))
        (info,) = client.list_timers(config, connect=lambda: conn)
        assert info.instance_id == "abc"
        assert info.phase is PhaseKind.BREAK
        assert info.work_minutes == 25
        assert info.minutes_left == 1
        assert info.started_at == datetime(2024, 5, 1, 10, 30)
