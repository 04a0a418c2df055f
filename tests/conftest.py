import asyncio
import json
from typing import Any, Optional, Union

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestServer


class FakeMoonraker:
    """In-process stand-in for the Moonraker HTTP and websocket endpoints."""

    def __init__(self) -> None:
        self.address = ""
        self.root_status = 200
        self.token_status = 200
        self.token_body: Any = {"result": "oneshot-abc123"}
        # successive server.info answers; the last one repeats
        self.klippy_states: list[tuple[bool, str]] = [(True, "ready")]
        self.respond_to: Optional[set[str]] = None
        self.subscribe_error: Optional[dict[str, Any]] = None
        self.notifications: list[Union[str, dict[str, Any]]] = []
        self.close_after_notifications = False

        self.requests: list[dict[str, Any]] = []
        self.tokens_seen: list[Optional[str]] = []
        self.notifications_sent = asyncio.Event()
        self.client_closed = asyncio.Event()
        self.close_code: Optional[int] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self._root_handler)
        app.router.add_get("/access/oneshot_token", self._token_handler)
        app.router.add_get("/websocket", self._websocket_handler)
        return app

    async def _root_handler(self, request: web.Request) -> web.StreamResponse:
        return web.Response(status=self.root_status, text="Moonraker")

    async def _token_handler(self, request: web.Request) -> web.StreamResponse:
        if self.token_status != 200:
            return web.Response(status=self.token_status, text="Unauthorized")
        if isinstance(self.token_body, str):
            return web.Response(text=self.token_body, content_type="application/json")
        return web.json_response(self.token_body)

    async def _websocket_handler(self, request: web.Request) -> web.StreamResponse:
        self.tokens_seen.append(request.query.get("token"))
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        async for message in ws:
            if message.type != WSMsgType.TEXT:
                continue
            frame = json.loads(message.data)
            self.requests.append(frame)
            method = frame.get("method")
            if self.respond_to is not None and method not in self.respond_to:
                continue
            if method == "server.info":
                await ws.send_json(self._server_info(frame["id"]))
            elif method == "printer.objects.subscribe":
                await self._answer_subscribe(ws, frame["id"])
                if self.close_after_notifications:
                    await ws.close()
                    break

        self.close_code = ws.close_code
        self.client_closed.set()
        return ws

    def _server_info(self, request_id: int) -> dict[str, Any]:
        if len(self.klippy_states) > 1:
            connected, state = self.klippy_states.pop(0)
        else:
            connected, state = self.klippy_states[0]
        return {
            "id": request_id,
            "jsonrpc": "2.0",
            "result": {"klippy_connected": connected, "klippy_state": state},
        }

    async def _answer_subscribe(self, ws: web.WebSocketResponse, request_id: int) -> None:
        if self.subscribe_error is not None:
            await ws.send_json(
                {"id": request_id, "jsonrpc": "2.0", "error": self.subscribe_error}
            )
            return
        await ws.send_json(
            {
                "id": request_id,
                "jsonrpc": "2.0",
                "result": {"eventtime": 100.0, "status": {}},
            }
        )
        for notification in self.notifications:
            if isinstance(notification, str):
                await ws.send_str(notification)
            else:
                await ws.send_json(notification)
        self.notifications_sent.set()


@pytest.fixture
def status_notification():
    """Builder for ``notify_status_update`` frames carrying ``[delta, eventtime]``."""

    def build(delta: dict[str, Any], eventtime: float = 101.0) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "method": "notify_status_update",
            "params": [delta, eventtime],
        }

    return build


@pytest_asyncio.fixture
async def fake_moonraker():
    fake = FakeMoonraker()
    async with TestServer(fake.build_app()) as server:
        fake.address = f"{server.host}:{server.port}"
        yield fake
