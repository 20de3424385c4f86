"""Tests for the NOWEB session lifecycle and connection state machine."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from wakit.core.errors import SessionStatusError
from wakit.engines.noweb.socket import DisconnectReason
from wakit.models.enums import SessionStatus, WAEvent

from tests.conftest import ALICE, FakeSocket, make_session, text_message


async def connection_update(sock: FakeSocket, update: dict[str, Any]) -> None:
    sock.ev.emit("connection.update", update)
    await sock.ev.drain()


def closed(code: int) -> dict[str, Any]:
    return {"connection": "close", "lastDisconnect": {"statusCode": code, "error": "boom"}}


class TestStart:
    async def test_start_builds_and_connects(self) -> None:
        session, sockets = make_session()
        await session.start()
        assert session.status == SessionStatus.STARTING
        [sock] = sockets
        sock.connect.assert_awaited_once()
        assert session.sock is sock
        assert sock.ev.listener_count("messages.upsert") > 0
        await session.stop()

    async def test_qr_then_open(self) -> None:
        session, sockets = make_session()
        await session.start()
        sock = sockets[0]

        await connection_update(sock, {"qr": "2@abc"})
        assert session.status == SessionStatus.SCAN_QR_CODE
        assert session.get_qr() == "2@abc"

        await connection_update(sock, {"connection": "open"})
        assert session.status == SessionStatus.WORKING
        assert session.get_qr() == ""
        await session.stop()

    async def test_me_info(self) -> None:
        session, _ = make_session()
        await session.start()
        me = session.get_session_me_info()
        assert me is not None
        assert me.id == "999@c.us"
        assert me.push_name == "Me"
        await session.stop()

    async def test_factory_failure_marks_failed_and_retries(self) -> None:
        session, sockets = make_session()
        build = session.socket_factory
        attempts = {"n": 0}

        def flaky(s):
            attempts["n"] += 1
            if attempts["n"] == 1:
                raise RuntimeError("no network")
            return build(s)

        session.socket_factory = flaky
        await session.start()
        assert session.status == SessionStatus.FAILED
        await asyncio.sleep(0.02)
        assert attempts["n"] == 2
        assert session.status == SessionStatus.STARTING
        assert len(sockets) == 1
        await session.stop()


class TestConnectionClose:
    async def test_restart_required_reconnects(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"connection": "open"})

        await connection_update(sockets[0], closed(DisconnectReason.RESTART_REQUIRED))
        await asyncio.sleep(0.02)

        assert len(sockets) == 2
        sockets[0].end.assert_awaited()
        assert session.sock is sockets[1]
        assert session.status == SessionStatus.STARTING
        await session.stop()

    async def test_connection_lost_reconnects(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"connection": "open"})

        await connection_update(sockets[0], closed(DisconnectReason.CONNECTION_CLOSED))
        await asyncio.sleep(0.02)
        assert len(sockets) == 2
        await session.stop()

    async def test_close_burst_restarts_once(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"connection": "open"})

        sockets[0].ev.emit("connection.update", closed(DisconnectReason.CONNECTION_CLOSED))
        sockets[0].ev.emit("connection.update", closed(DisconnectReason.CONNECTION_CLOSED))
        await sockets[0].ev.drain()
        await asyncio.sleep(0.02)

        assert len(sockets) == 2
        sockets[0].end.assert_awaited_once()
        assert session.sock is sockets[1]
        await session.stop()

    async def test_logged_out_fails(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"connection": "open"})

        await connection_update(sockets[0], closed(DisconnectReason.LOGGED_OUT))
        await asyncio.sleep(0.02)

        assert session.status == SessionStatus.FAILED
        assert not session.should_restart
        assert len(sockets) == 1
        sockets[0].end.assert_awaited()

    async def test_close_while_waiting_for_qr_scan_fails(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"qr": "2@abc"})

        await connection_update(sockets[0], closed(DisconnectReason.TIMED_OUT))
        await asyncio.sleep(0.02)

        assert session.status == SessionStatus.FAILED
        assert session.get_qr() == ""
        assert len(sockets) == 1

    async def test_stuck_in_starting_fails(self) -> None:
        session, sockets = make_session()
        await session.start()
        session.is_stuck_in_starting = lambda: True  # type: ignore[method-assign]

        await connection_update(sockets[0], closed(DisconnectReason.CONNECTION_CLOSED))
        assert session.status == SessionStatus.FAILED

    async def test_new_login_restarts(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"isNewLogin": True})
        await asyncio.sleep(0.02)
        assert len(sockets) == 2
        await session.stop()

    async def test_restart_burst_builds_one_socket(self) -> None:
        session, sockets = make_session()
        await session.start()
        session.restart_client()
        session.restart_client()
        session.restart_client()
        await asyncio.sleep(0.02)
        assert len(sockets) == 2
        await session.stop()


class TestStopAndUnpair:
    async def test_stop(self) -> None:
        session, sockets = make_session()
        await session.start()
        await session.stop()

        assert session.status == SessionStatus.STOPPED
        assert not session.should_restart
        assert session.events.completed
        sockets[0].end.assert_awaited_once()
        assert sockets[0].ev.listener_count("connection.update") == 0

    async def test_no_restart_after_stop(self) -> None:
        session, sockets = make_session()
        await session.start()
        await session.stop()
        session.restart_client()
        await asyncio.sleep(0.02)
        assert len(sockets) == 1

    async def test_stop_cancels_pending_restart(self) -> None:
        session, sockets = make_session()
        session._restart_job._delay = 0.05
        await session.start()
        session.restart_client()
        await session.stop()
        await asyncio.sleep(0.1)
        assert len(sockets) == 1

    async def test_store_can_be_reopened(self) -> None:
        session, sockets = make_session()
        await session.start()
        await session.stop()
        assert not session._store_ready

        session.should_restart = True
        await session.build_client()
        assert session._store_ready
        assert len(sockets) == 2

    async def test_unpair_logs_out(self) -> None:
        session, sockets = make_session()
        await session.start()
        await connection_update(sockets[0], {"connection": "open"})

        await session.unpair()

        sockets[0].logout.assert_awaited_once()
        assert session.status == SessionStatus.STOPPED
        assert session.unpairing

    async def test_unpairing_ignores_other_statuses(self) -> None:
        session, _ = make_session()
        await session.start()
        session.unpairing = True
        session.status = SessionStatus.WORKING
        assert session.status == SessionStatus.STARTING
        await session.stop()
        assert session.status == SessionStatus.STOPPED


class TestAutoRestart:
    async def test_skips_while_connecting(self) -> None:
        session, sockets = make_session()
        await session.start()
        sockets[0].is_connecting = True
        await session._auto_restart()
        sockets[0].end.assert_not_awaited()

        sockets[0].is_connecting = False
        await session._auto_restart()
        sockets[0].end.assert_awaited_once()
        await session.stop()

    async def test_auto_restart_reconnects_on_close(self) -> None:
        session, sockets = make_session()
        await session.start()
        first = sockets[0]
        await connection_update(first, {"connection": "open"})

        async def end() -> None:
            first.ev.emit("connection.update", closed(DisconnectReason.CONNECTION_CLOSED))

        first.end.side_effect = end
        await session._auto_restart()
        await first.ev.drain()
        await asyncio.sleep(0.02)

        assert len(sockets) == 2
        assert session.sock is sockets[1]
        assert session.status == SessionStatus.STARTING
        await session.stop()

    async def test_periodic_job_started_when_enabled(self) -> None:
        session, _ = make_session(auto_restart=True)
        await session.start()
        assert session._auto_restart_job.running
        await session.stop()
        assert not session._auto_restart_job.running


class TestStatusStream:
    async def test_status_events_in_order(self, advance) -> None:
        session, sockets = make_session()
        received: list[dict[str, Any]] = []
        session.events.subscribe(WAEvent.SESSION_STATUS, received.append)

        await session.start()
        await connection_update(sockets[0], {"qr": "2@abc"})
        await connection_update(sockets[0], {"connection": "open"})
        await advance()
        await session.stop()

        assert [event["status"] for event in received] == [
            SessionStatus.STARTING,
            SessionStatus.SCAN_QR_CODE,
            SessionStatus.WORKING,
            SessionStatus.STOPPED,
        ]
        assert all(event["name"] == "default" for event in received)

    async def test_working_waits_for_me_info(self, advance) -> None:
        session, sockets = make_session(me={"id": "999@s.whatsapp.net"})
        received: list[dict[str, Any]] = []
        session.events.subscribe(WAEvent.SESSION_STATUS, received.append)

        await session.start()
        await connection_update(sockets[0], {"connection": "open"})
        await advance()
        assert session.status == SessionStatus.WORKING
        assert [event["status"] for event in received] == [SessionStatus.STARTING]
        await session.stop()


class TestReconnectKeepsSubscriptions:
    async def test_message_subscriber_survives_restart(self, advance) -> None:
        session, sockets = make_session()
        received: list[dict[str, Any]] = []
        session.events.subscribe(WAEvent.MESSAGE, received.append)

        await session.start()
        await connection_update(sockets[0], closed(DisconnectReason.RESTART_REQUIRED))
        await asyncio.sleep(0.02)
        assert len(sockets) == 2

        sockets[0].ev.emit("messages.upsert", {"type": "notify", "messages": [text_message(ALICE, "OLD")]})
        sockets[1].ev.emit("messages.upsert", {"type": "notify", "messages": [text_message(ALICE, "NEW")]})
        await sockets[1].ev.drain()
        await advance(10)

        assert [event["id"] for event in received] == ["false_111@c.us_NEW"]
        await session.stop()


class TestScreenshotAndCode:
    async def test_screenshot_by_status(self) -> None:
        session, sockets = make_session()
        await session.start()
        with pytest.raises(SessionStatusError) as exc_info:
            await session.get_screenshot()
        assert exc_info.value.status == SessionStatus.STARTING

        await connection_update(sockets[0], {"qr": "2@abc"})
        png = await session.get_screenshot()
        assert png.startswith(b"\x89PNG")
        await session.stop()
