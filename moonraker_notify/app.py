"""Main application entry-point for moonraker-notify."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum
from typing import FrozenSet, Optional

from .config import NotifyConfig, load_config
from .core import PrinterStatusSnapshot
from .errors import MoonrakerNotifyError
from .logging import configure_logging
from .session import MoonrakerSession

LOGGER = logging.getLogger(__name__)


class AppState(str, Enum):
    COLD_START = "cold_start"
    ACTIVE = "active"
    STOPPING = "stopping"
    STOPPED = "stopped"


class MoonrakerNotifyApp:
    """Coordinates session startup, steady state and shutdown.

    The session runs until SIGINT/SIGTERM or until Moonraker closes the
    websocket. On a signal the websocket is closed with a normal-closure
    frame and the peer gets a short grace period to acknowledge.
    """

    def __init__(
        self,
        config: Optional[NotifyConfig] = None,
        *,
        session: Optional[MoonrakerSession] = None,
    ) -> None:
        self._config = config or load_config()
        self._session = session or MoonrakerSession(self._config.server.endpoint)
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state = AppState.COLD_START
        self._signals_installed: list[signal.Signals] = []

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def session(self) -> MoonrakerSession:
        return self._session

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None and not self._shutdown_event.is_set():
            LOGGER.info("Interrupt received, shutting down")
            self._shutdown_event.set()

    async def run(self) -> None:
        """Run the session until interrupted or disconnected.

        Startup failures propagate after the session has been torn down.
        """

        self._shutdown_event = asyncio.Event()
        self._install_signal_handlers()
        self._session.merger.add_listener(self._log_status)

        LOGGER.info(
            "moonraker-notify starting (moonraker=%s, config=%s)",
            self._session.address,
            self._config.path,
        )
        try:
            await self._session.start()
            self._transition(AppState.ACTIVE)
            await self._wait_for_exit()
        finally:
            self._transition(AppState.STOPPING)
            self._session.merger.remove_listener(self._log_status)
            await self._session.aclose()
            self._remove_signal_handlers()
            self._transition(AppState.STOPPED)

    @classmethod
    def start(cls, config: Optional[NotifyConfig] = None) -> int:
        try:
            instance = cls(config=config)
            configure_logging(
                instance._config.logging.level,
                log_path=instance._config.logging.path,
                log_network=instance._config.logging.log_network,
            )
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("moonraker-notify received shutdown signal")
        except MoonrakerNotifyError as exc:
            LOGGER.error("moonraker-notify aborted: %s", exc)
            return 1
        return 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _wait_for_exit(self) -> None:
        assert self._shutdown_event is not None
        shutdown = asyncio.create_task(self._shutdown_event.wait())
        closed = asyncio.create_task(self._session.wait_closed())
        try:
            await asyncio.wait({shutdown, closed}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (shutdown, closed):
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if self._shutdown_event.is_set():
            await self._session.close()
        else:
            LOGGER.warning("Moonraker closed the websocket")

    def _transition(self, state: AppState) -> None:
        if state == self._state:
            return
        LOGGER.info("App state transition %s -> %s", self._state.value, state.value)
        self._state = state

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError, ValueError):
                # not on the main thread, or unsupported by the platform loop
                continue
            self._signals_installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed.clear()

    @staticmethod
    def _log_status(snapshot: PrinterStatusSnapshot, changed: FrozenSet[str]) -> None:
        LOGGER.info("Printer status: %s", snapshot.summary())
