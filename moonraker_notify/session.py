"""A single authenticated Moonraker websocket session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from . import constants
from .adapters import MoonrakerTransport
from .core import (
    Correlator,
    MessageRouter,
    PrinterStatusSnapshot,
    ReadinessState,
    ReadinessStateMachine,
    StatusMerger,
    SubscriptionManager,
)
from .errors import KlippyNotReadyError, TransportError

LOGGER = logging.getLogger(__name__)


class MoonrakerSession:
    """Owns one websocket session together with its id counter and snapshot.

    ``start()`` runs the startup sequence: reachability check, oneshot token,
    websocket connect, receive loop, readiness handshake and subscription.
    Any failure along the way propagates and is not retried.
    """

    def __init__(
        self,
        address: str,
        *,
        transport: Optional[MoonrakerTransport] = None,
        rpc_timeout: float = constants.RPC_TIMEOUT_SECONDS,
        startup_retry_delay: float = constants.STARTUP_RETRY_DELAY_SECONDS,
        close_timeout: float = constants.CLOSE_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.address = address
        self.close_timeout = close_timeout
        self.transport = transport or MoonrakerTransport(address)

        self.merger = StatusMerger()
        self.correlator = Correlator(self.transport.send, timeout=rpc_timeout)
        self.router = MessageRouter(
            on_response=self.correlator.deliver,
            on_notification=self.merger.apply,
        )
        self.readiness = ReadinessStateMachine(
            self.correlator, retry_delay=startup_retry_delay, sleep=sleep
        )
        self.subscriptions = SubscriptionManager(self.correlator)
        self.transport.add_close_callback(self._on_transport_closed)

    @property
    def snapshot(self) -> PrinterStatusSnapshot:
        return self.merger.snapshot

    @property
    def closed(self) -> asyncio.Event:
        return self.transport.closed

    async def start(self) -> None:
        """Bring the session to the steady state.

        Raises:
            TransportConnectError: Moonraker unreachable or websocket dial failed.
            TransportError: Oneshot token request failed.
            TokenMissingError: Oneshot token response had no token.
            KlippyNotReadyError: Readiness handshake ended in ``failed``.
            RPCTimeoutError: Subscription got no response in time.
        """

        await self.transport.check_connection()
        token = await self.transport.fetch_oneshot_token()
        await self.transport.connect(token)
        self.transport.start_receiving(self.router.dispatch)

        state = await self.readiness.run()
        if state is not ReadinessState.READY:
            readiness = self.readiness.last_readiness
            detail = (
                f"klippy_connected={readiness.connected} klippy_state={readiness.state}"
                if readiness is not None
                else "no usable server.info response"
            )
            raise KlippyNotReadyError(f"Klippy is not ready ({detail})")

        await self.subscriptions.subscribe()
        LOGGER.info("Subscription successful, ready to notify")

    async def wait_closed(self) -> None:
        await self.transport.wait_closed()

    async def close(self) -> None:
        """Close the websocket gracefully, waiting briefly for the peer."""
        await self.transport.close(timeout=self.close_timeout)

    async def aclose(self) -> None:
        await self.close()
        await self.transport.aclose()

    async def __aenter__(self) -> "MoonrakerSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _on_transport_closed(self) -> None:
        self.correlator.fail_pending(TransportError("Websocket connection closed"))
