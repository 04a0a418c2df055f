"""Request/response correlation for Moonraker JSON-RPC calls."""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from .. import constants
from ..errors import RPCError, RPCTimeoutError, SendError

LOGGER = logging.getLogger(__name__)

SendFunc = Callable[[dict[str, Any]], Awaitable[None]]


class Correlator:
    """Pairs each outgoing request with the response carrying its id.

    Ids come from a counter owned by this instance, starting at 1 and
    strictly increasing for the lifetime of the session. Only one request
    may be outstanding at a time.
    """

    def __init__(
        self,
        send: SendFunc,
        *,
        timeout: float = constants.RPC_TIMEOUT_SECONDS,
    ) -> None:
        self._send = send
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._last_id = 0
        self._awaited: Optional[tuple[int, asyncio.Future[dict[str, Any]]]] = None

    @property
    def last_id(self) -> int:
        """Id of the most recently issued request (0 before the first)."""
        return self._last_id

    @property
    def awaiting(self) -> Optional[int]:
        return self._awaited[0] if self._awaited is not None else None

    def next_id(self) -> int:
        self._last_id = next(self._ids)
        return self._last_id

    async def issue(
        self, method: str, params: Optional[Mapping[str, Any]] = None
    ) -> dict[str, Any]:
        """Send ``method`` and wait for its correlated response.

        Raises:
            RPCTimeoutError: If no matching response arrives within the timeout.
            RPCError: If the response carries a JSON-RPC error object.
            TransportError: If the connection closes while waiting.
        """

        if self._awaited is not None:
            raise RuntimeError(
                f"Request id={self._awaited[0]} is still outstanding"
            )

        request_id = self.next_id()
        request: dict[str, Any] = {
            "id": request_id,
            "jsonrpc": constants.JSONRPC_VERSION,
            "method": method,
        }
        if params is not None:
            request["params"] = dict(params)

        future: asyncio.Future[dict[str, Any]] = (
            asyncio.get_running_loop().create_future()
        )
        self._awaited = (request_id, future)
        try:
            try:
                await self._send(request)
                LOGGER.debug("Sent %s (id=%d)", method, request_id)
            except SendError as exc:
                # The session carries on; the wait below surfaces the failure.
                LOGGER.warning("Failed to send %s (id=%d): %s", method, request_id, exc)

            try:
                async with asyncio.timeout(self.timeout):
                    response = await future
            except asyncio.TimeoutError:
                LOGGER.warning(
                    "%s (id=%d) timed out after %.1fs", method, request_id, self.timeout
                )
                raise RPCTimeoutError(method, request_id, self.timeout) from None
        finally:
            self._awaited = None

        error = response.get("error")
        if error is not None:
            raise RPCError(method, request_id, error)

        LOGGER.debug("Response to %s (id=%d) received", method, request_id)
        return response

    def deliver(self, response: Mapping[str, Any]) -> None:
        """Hand a response frame from the router to the awaiting request.

        Responses whose id does not match the awaited request are logged and
        discarded.
        """

        response_id = response.get("id")
        awaited = self._awaited
        if awaited is None or awaited[0] != response_id or awaited[1].done():
            LOGGER.debug("Discarding unmatched response id=%s", response_id)
            return
        awaited[1].set_result(dict(response))

    def fail_pending(self, exc: BaseException) -> None:
        """Fail the outstanding request, if any, with ``exc``."""

        awaited = self._awaited
        if awaited is not None and not awaited[1].done():
            awaited[1].set_exception(exc)
