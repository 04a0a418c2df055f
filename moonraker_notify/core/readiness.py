"""Klippy readiness handshake driven by ``server.info``."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from .. import constants
from ..errors import (
    ParseError,
    RPCError,
    RPCTimeoutError,
    TransportError,
)

LOGGER = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class RPCIssuer(Protocol):
    async def issue(
        self, method: str, params: Optional[Mapping[str, Any]] = None
    ) -> dict[str, Any]:
        ...


class ReadinessState(str, Enum):
    CONNECTING = "connecting"
    AWAITING_INFO = "awaiting_info"
    STARTUP_RETRY = "startup_retry"
    READY = "ready"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ReadinessState.READY, ReadinessState.FAILED})

_TRANSITIONS: dict[ReadinessState, frozenset[ReadinessState]] = {
    ReadinessState.CONNECTING: frozenset({ReadinessState.AWAITING_INFO}),
    ReadinessState.AWAITING_INFO: frozenset(
        {ReadinessState.READY, ReadinessState.STARTUP_RETRY, ReadinessState.FAILED}
    ),
    ReadinessState.STARTUP_RETRY: frozenset({ReadinessState.AWAITING_INFO}),
    ReadinessState.READY: frozenset(),
    ReadinessState.FAILED: frozenset(),
}


@dataclass(slots=True, frozen=True)
class KlippyReadiness:
    connected: bool
    state: str

    @classmethod
    def from_result(cls, result: Any) -> "KlippyReadiness":
        if not isinstance(result, Mapping):
            raise ParseError(f"server.info result is not an object: {result!r}")

        connected = result.get("klippy_connected", False)
        state = result.get("klippy_state", "")
        if not isinstance(connected, bool):
            raise ParseError(f"klippy_connected is not a boolean: {connected!r}")
        if not isinstance(state, str):
            raise ParseError(f"klippy_state is not a string: {state!r}")
        return cls(connected=connected, state=state)

    @property
    def is_ready(self) -> bool:
        return self.connected and self.state == "ready"

    @property
    def is_starting_up(self) -> bool:
        return self.connected and self.state == "startup"


class ReadinessStateMachine:
    """Polls ``server.info`` until Klippy is ready, with one bounded retry.

    ``Connecting -> AwaitingInfo -> {Ready | StartupRetry | Failed}``. A
    ``startup`` answer on the first attempt sleeps ``retry_delay`` seconds and
    asks once more; any other outcome is terminal.
    """

    def __init__(
        self,
        correlator: RPCIssuer,
        *,
        retry_delay: float = constants.STARTUP_RETRY_DELAY_SECONDS,
        max_attempts: int = 2,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._correlator = correlator
        self.retry_delay = retry_delay
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep
        self._state = ReadinessState.CONNECTING
        self._attempts = 0
        self._last_readiness: Optional[KlippyReadiness] = None
        self.history: list[ReadinessState] = [self._state]

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def last_readiness(self) -> Optional[KlippyReadiness]:
        return self._last_readiness

    async def run(self) -> ReadinessState:
        """Drive the machine to a terminal state and return it."""

        if self._state in TERMINAL_STATES:
            return self._state

        self._transition(ReadinessState.AWAITING_INFO)
        while self._state not in TERMINAL_STATES:
            if self._state is ReadinessState.AWAITING_INFO:
                self._transition(await self._query())
            elif self._state is ReadinessState.STARTUP_RETRY:
                LOGGER.info(
                    "Klippy in startup, waiting %.0fs and checking again",
                    self.retry_delay,
                )
                await self._sleep(self.retry_delay)
                self._transition(ReadinessState.AWAITING_INFO)

        if self._state is ReadinessState.READY:
            LOGGER.info("Klippy connected and ready")
        else:
            LOGGER.error(
                "Klippy not ready after %d attempt(s) (last=%s)",
                self._attempts,
                self._last_readiness,
            )
        return self._state

    async def _query(self) -> ReadinessState:
        self._attempts += 1
        try:
            response = await self._correlator.issue(constants.METHOD_SERVER_INFO)
            readiness = KlippyReadiness.from_result(response.get("result"))
        except (RPCTimeoutError, RPCError, ParseError, TransportError) as exc:
            LOGGER.warning("server.info attempt %d failed: %s", self._attempts, exc)
            return ReadinessState.FAILED

        self._last_readiness = readiness
        LOGGER.debug(
            "server.info attempt %d: connected=%s state=%s",
            self._attempts,
            readiness.connected,
            readiness.state,
        )
        if readiness.is_ready:
            return ReadinessState.READY
        if readiness.is_starting_up and self._attempts < self.max_attempts:
            return ReadinessState.STARTUP_RETRY
        return ReadinessState.FAILED

    def _transition(self, target: ReadinessState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid readiness transition {self._state.value} -> {target.value}"
            )
        LOGGER.debug("Readiness %s -> %s", self._state.value, target.value)
        self._state = target
        self.history.append(target)
