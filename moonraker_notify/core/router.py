"""Classification of inbound Moonraker frames."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Union

from .. import constants

LOGGER = logging.getLogger(__name__)

FrameSink = Callable[[dict[str, Any]], Any]


class MessageRouter:
    """Splits inbound frames into correlated responses and notifications.

    A frame with a non-null ``id`` is a response and goes to ``on_response``.
    A frame without one whose ``method`` is the status notification goes to
    ``on_notification``. Everything else is logged and dropped.
    """

    def __init__(
        self,
        *,
        on_response: FrameSink,
        on_notification: FrameSink,
        notification_method: str = constants.METHOD_NOTIFY_STATUS_UPDATE,
    ) -> None:
        self._on_response = on_response
        self._on_notification = on_notification
        self._notification_method = notification_method
        self.dropped_frames = 0

    def dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError) as exc:
            self._drop("unparseable frame (%s): %.200r", exc, raw)
            return

        if not isinstance(frame, dict):
            self._drop("non-object frame: %.200r", raw)
            return

        if frame.get("id") is not None:
            self._deliver(self._on_response, frame)
            return

        method = frame.get("method")
        if method == self._notification_method:
            self._deliver(self._on_notification, frame)
            return

        if isinstance(method, str):
            LOGGER.debug("Ignoring notification %s", method)
            return

        self._drop("frame without id or method: %.200r", raw)

    def _deliver(self, sink: FrameSink, frame: dict[str, Any]) -> None:
        try:
            sink(frame)
        except Exception:
            LOGGER.exception("Frame handler failed; frame dropped")

    def _drop(self, message: str, *args: Any) -> None:
        self.dropped_frames += 1
        LOGGER.warning("Dropping " + message, *args)
