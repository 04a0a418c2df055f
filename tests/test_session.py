"""End-to-end session tests against an in-process fake Moonraker."""

import asyncio

import aiohttp
import pytest

from moonraker_notify.core import Duration, ReadinessState
from moonraker_notify.errors import (
    KlippyNotReadyError,
    RPCTimeoutError,
    TokenMissingError,
    TransportConnectError,
)
from moonraker_notify.session import MoonrakerSession


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_session(address: str, **kwargs) -> MoonrakerSession:
    kwargs.setdefault("rpc_timeout", 0.5)
    kwargs.setdefault("sleep", SleepRecorder())
    return MoonrakerSession(address, **kwargs)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_session_start_handshakes_and_subscribes(fake_moonraker):
    async with make_session(fake_moonraker.address) as session:
        await session.start()

        assert session.readiness.state is ReadinessState.READY
        assert session.subscriptions.subscribed is True

    assert fake_moonraker.tokens_seen == ["oneshot-abc123"]
    assert [(r["id"], r["method"]) for r in fake_moonraker.requests] == [
        (1, "server.info"),
        (2, "printer.objects.subscribe"),
    ]
    assert fake_moonraker.requests[1]["params"] == {
        "objects": {"virtual_sdcard": None, "print_stats": None}
    }
    assert all(r["jsonrpc"] == "2.0" for r in fake_moonraker.requests)


@pytest.mark.asyncio
async def test_notifications_update_snapshot(fake_moonraker, status_notification):
    fake_moonraker.notifications = [
        status_notification(
            {
                "print_stats": {
                    "filename": "benchy.gcode",
                    "state": "printing",
                    "print_duration": 3725.0,
                    "info": {"current_layer": 4, "total_layer": 80},
                },
                "virtual_sdcard": {"progress": 0.1},
            },
            eventtime=101.0,
        ),
        "this is not json",
        {"jsonrpc": "2.0", "method": "notify_status_update", "params": []},
        status_notification({"virtual_sdcard": {"progress": 0.2}}, eventtime=102.0),
    ]

    async with make_session(fake_moonraker.address) as session:
        await session.start()
        await wait_until(lambda: session.snapshot.progress == 0.2)

        snapshot = session.snapshot
        assert snapshot.filename == "benchy.gcode"
        assert snapshot.state == "printing"
        assert snapshot.layer == 4
        assert snapshot.total_layers == 80
        assert snapshot.time_remaining == Duration(1, 2, 5)
        assert session.router.dropped_frames == 1
        assert not session.closed.is_set()


@pytest.mark.asyncio
async def test_startup_state_retries_once(fake_moonraker):
    fake_moonraker.klippy_states = [(True, "startup"), (True, "ready")]
    sleep = SleepRecorder()

    async with make_session(fake_moonraker.address, sleep=sleep) as session:
        await session.start()

    assert sleep.delays == [10.0]
    assert [r["method"] for r in fake_moonraker.requests] == [
        "server.info",
        "server.info",
        "printer.objects.subscribe",
    ]


@pytest.mark.asyncio
async def test_persistent_startup_state_aborts(fake_moonraker):
    fake_moonraker.klippy_states = [(True, "startup")]

    async with make_session(fake_moonraker.address) as session:
        with pytest.raises(KlippyNotReadyError, match="startup"):
            await session.start()

    assert [r["method"] for r in fake_moonraker.requests] == [
        "server.info",
        "server.info",
    ]


@pytest.mark.asyncio
async def test_unanswered_server_info_fails_readiness(fake_moonraker):
    fake_moonraker.respond_to = set()

    async with make_session(fake_moonraker.address, rpc_timeout=0.1) as session:
        with pytest.raises(KlippyNotReadyError, match="no usable server.info"):
            await session.start()


@pytest.mark.asyncio
async def test_unanswered_subscription_times_out(fake_moonraker):
    fake_moonraker.respond_to = {"server.info"}

    async with make_session(fake_moonraker.address, rpc_timeout=0.1) as session:
        with pytest.raises(RPCTimeoutError):
            await session.start()


@pytest.mark.asyncio
async def test_subscription_error_response_still_reaches_steady_state(
    fake_moonraker, caplog
):
    fake_moonraker.subscribe_error = {"code": 400, "message": "Invalid objects"}
    caplog.set_level("WARNING", logger="moonraker_notify.core.subscription")

    async with make_session(fake_moonraker.address) as session:
        await session.start()

        assert session.readiness.state is ReadinessState.READY
        assert session.subscriptions.subscribed is True
        assert session.transport.connected is True
        assert not session.closed.is_set()

    assert "Invalid objects" in caplog.text


@pytest.mark.asyncio
async def test_missing_token_aborts_before_connecting(fake_moonraker):
    fake_moonraker.token_body = {"result": None}

    async with make_session(fake_moonraker.address) as session:
        with pytest.raises(TokenMissingError):
            await session.start()

    assert fake_moonraker.tokens_seen == []


@pytest.mark.asyncio
async def test_unreachable_backend_aborts(fake_moonraker):
    fake_moonraker.root_status = 500

    async with make_session(fake_moonraker.address) as session:
        with pytest.raises(TransportConnectError):
            await session.start()


@pytest.mark.asyncio
async def test_close_sends_normal_closure(fake_moonraker):
    session = make_session(fake_moonraker.address)
    await session.start()

    await session.close()
    await asyncio.wait_for(fake_moonraker.client_closed.wait(), timeout=2.0)
    await session.aclose()

    assert session.closed.is_set()
    assert fake_moonraker.close_code == aiohttp.WSCloseCode.OK


@pytest.mark.asyncio
async def test_peer_close_is_broadcast(fake_moonraker):
    fake_moonraker.close_after_notifications = True

    async with make_session(fake_moonraker.address) as session:
        await session.start()
        await asyncio.wait_for(session.wait_closed(), timeout=2.0)

        assert session.closed.is_set()
