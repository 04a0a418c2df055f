"""Status object subscription."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .. import constants
from ..errors import RPCError
from .readiness import RPCIssuer

LOGGER = logging.getLogger(__name__)

# ``None`` asks Moonraker for every attribute of the object.
DEFAULT_SUBSCRIPTION_OBJECTS: dict[str, Optional[list[str]]] = {
    "virtual_sdcard": None,
    "print_stats": None,
}


class SubscriptionManager:
    """Issues ``printer.objects.subscribe`` once the backend is ready."""

    def __init__(
        self,
        correlator: RPCIssuer,
        objects: Optional[Mapping[str, Optional[list[str]]]] = None,
    ) -> None:
        self._correlator = correlator
        source = DEFAULT_SUBSCRIPTION_OBJECTS if objects is None else objects
        # keep the payload JSON-serialisable and detached from the caller
        self._objects = {
            key: (list(value) if isinstance(value, list) else None)
            for key, value in source.items()
        }
        self.subscribed = False

    @property
    def objects(self) -> dict[str, Optional[list[str]]]:
        return dict(self._objects)

    async def subscribe(self) -> dict[str, Any]:
        """Subscribe and return the correlated response.

        Any correlated reply completes the subscription. A JSON-RPC error
        object is logged and handed back as the response; timeouts and
        transport failures still propagate.
        """

        try:
            response = await self._correlator.issue(
                constants.METHOD_OBJECTS_SUBSCRIBE, {"objects": self.objects}
            )
        except RPCError as exc:
            LOGGER.warning(
                "Moonraker answered subscription (id=%d) with an error: %s",
                exc.request_id,
                exc.error,
            )
            response = {"id": exc.request_id, "error": exc.error}

        self.subscribed = True
        LOGGER.info(
            "Subscribed to Moonraker objects: %s", ", ".join(sorted(self._objects))
        )
        return response
