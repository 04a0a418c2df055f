"""Moonraker adapter providing HTTP and WebSocket helpers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import aiohttp

from .. import constants
from ..errors import (
    SendError,
    TokenMissingError,
    TransportConnectError,
    TransportError,
)

LOGGER = logging.getLogger(__name__)

FrameHandler = Callable[[str], None]
CloseCallback = Callable[[], None]


async def check_connection(
    session: aiohttp.ClientSession,
    address: str,
    *,
    timeout: float = constants.HTTP_TIMEOUT_SECONDS,
) -> int:
    """Request ``http://<address>/`` and return the HTTP status code.

    Raises:
        TransportConnectError: If the request fails or the status is not 2xx.
    """

    url = f"http://{address}/"
    try:
        async with session.get(
            url, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as response:
            status = response.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise TransportConnectError(f"Could not reach Moonraker at {url}: {exc}") from exc

    LOGGER.info("Moonraker at %s answered with status %d", url, status)
    if not 200 <= status < 300:
        raise TransportConnectError(
            f"Moonraker at {url} answered with status {status}"
        )
    return status


async def fetch_oneshot_token(
    session: aiohttp.ClientSession,
    address: str,
    *,
    timeout: float = constants.HTTP_TIMEOUT_SECONDS,
) -> str:
    """Request a single-use websocket token from Moonraker.

    Raises:
        TransportError: If the HTTP call fails, returns a non-2xx status or
            does not carry a JSON body.
        TokenMissingError: If the body has no ``result`` or it is null.
    """

    url = f"http://{address}{constants.ONESHOT_TOKEN_PATH}"
    LOGGER.debug("Requesting oneshot token from %s", url)

    try:
        async with session.get(
            url, timeout=aiohttp.ClientTimeout(total=timeout)
        ) as response:
            if not 200 <= response.status < 300:
                detail = await response.text()
                raise TransportError(
                    f"Oneshot token request failed with status {response.status}: {detail.strip()}"
                )
            try:
                data = await response.json(content_type=None)
            except ValueError as exc:
                raise TransportError(
                    f"Oneshot token response is not valid JSON: {exc}"
                ) from exc
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise TransportError(f"Could not get oneshot token from {url}: {exc}") from exc

    if not isinstance(data, dict) or data.get("result") is None:
        raise TokenMissingError("No token found in oneshot token response")

    token = data["result"]
    LOGGER.info("Obtained oneshot token")
    return token if isinstance(token, str) else str(token)


def build_ws_url(address: str, token: str) -> str:
    return f"ws://{address}{constants.WEBSOCKET_PATH}?{urlencode({'token': token})}"


class MoonrakerTransport:
    """Owns the HTTP session and the single Moonraker websocket."""

    def __init__(
        self,
        address: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        http_timeout: float = constants.HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.address = address
        self.http_timeout = http_timeout

        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._closed = asyncio.Event()
        self._close_callbacks: list[CloseCallback] = []
        self._error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def closed(self) -> asyncio.Event:
        """Broadcast signal set once the receive loop has terminated."""
        return self._closed

    @property
    def error(self) -> Optional[BaseException]:
        """Error that terminated the receive loop, if any."""
        return self._error

    async def check_connection(self) -> int:
        session = await self._ensure_session()
        return await check_connection(session, self.address, timeout=self.http_timeout)

    async def fetch_oneshot_token(self) -> str:
        session = await self._ensure_session()
        return await fetch_oneshot_token(
            session, self.address, timeout=self.http_timeout
        )

    async def connect(self, token: str) -> None:
        """Open the websocket authenticated by ``token``."""

        if self._ws is not None:
            raise RuntimeError("Websocket already connected")

        session = await self._ensure_session()
        url = build_ws_url(self.address, token)
        LOGGER.info(
            "Connecting to ws://%s%s", self.address, constants.WEBSOCKET_PATH
        )
        try:
            self._ws = await session.ws_connect(url, autoclose=True, autoping=True)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportConnectError(f"Websocket dial failed: {exc}") from exc

        self._closed.clear()
        self._error = None
        LOGGER.info("Connected to Moonraker websocket")

    async def send(self, payload: dict[str, Any]) -> None:
        """Serialise ``payload`` and write it as one text frame.

        Raises:
            SendError: If the socket is not open or the write fails. The
                connection is left as it is.
        """

        ws = self._ws
        if ws is None or ws.closed:
            raise SendError("Websocket is not connected")
        try:
            await ws.send_json(payload)
        except (ConnectionError, RuntimeError, aiohttp.ClientError) as exc:
            raise SendError(f"Socket send error: {exc}") from exc

    def start_receiving(self, handler: FrameHandler) -> asyncio.Task[None]:
        """Spawn the receive loop feeding every text frame to ``handler``."""

        if self._ws is None:
            raise RuntimeError("Websocket is not connected")
        if self._receive_task is not None and not self._receive_task.done():
            raise RuntimeError("Receive loop already running")

        self._receive_task = asyncio.create_task(
            self._receive_loop(self._ws, handler), name="moonraker-receive"
        )
        return self._receive_task

    def add_close_callback(self, callback: CloseCallback) -> None:
        self._close_callbacks.append(callback)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def close(self, timeout: float = constants.CLOSE_TIMEOUT_SECONDS) -> None:
        """Send a normal-closure frame and wait up to ``timeout`` for the peer.

        The connection is torn down whether or not the peer acknowledges.
        """

        ws = self._ws
        if ws is None:
            return

        if not ws.closed:
            try:
                async with asyncio.timeout(timeout):
                    await ws.close(code=aiohttp.WSCloseCode.OK)
            except asyncio.TimeoutError:
                LOGGER.warning(
                    "Moonraker did not acknowledge close within %.1fs", timeout
                )
            except (ConnectionError, aiohttp.ClientError) as exc:
                LOGGER.warning("Write close failed: %s", exc)

        task = self._receive_task
        if task is not None and not task.done():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._ws = None
        self._receive_task = None
        self._signal_closed()

    async def aclose(self) -> None:
        await self.close()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _receive_loop(
        self, ws: aiohttp.ClientWebSocketResponse, handler: FrameHandler
    ) -> None:
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    handler(message.data)
                elif message.type == aiohttp.WSMsgType.BINARY:
                    LOGGER.debug("Ignoring binary frame (%d bytes)", len(message.data))
                elif message.type == aiohttp.WSMsgType.ERROR:
                    raise ws.exception() or TransportError("Websocket error")
            LOGGER.info(
                "Moonraker websocket closed (code=%s)", ws.close_code
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._error = exc
            LOGGER.warning("Moonraker websocket read error: %s", exc)
        finally:
            self._signal_closed()

    def _signal_closed(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        for callback in list(self._close_callbacks):
            try:
                callback()
            except Exception:  # pragma: no cover - defensive logging
                LOGGER.exception("Transport close callback failed")
