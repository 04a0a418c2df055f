from typing import Optional

import pytest

from moonraker_notify.core import SubscriptionManager
from moonraker_notify.errors import RPCError, RPCTimeoutError


class RecordingCorrelator:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.calls: list[tuple[str, Optional[dict]]] = []
        self._error = error

    async def issue(self, method: str, params: Optional[dict] = None) -> dict:
        self.calls.append((method, params))
        if self._error is not None:
            raise self._error
        return {"id": 2, "result": {"anything": True}}


@pytest.mark.asyncio
async def test_subscribe_requests_virtual_sdcard_and_print_stats():
    correlator = RecordingCorrelator()
    manager = SubscriptionManager(correlator)

    response = await manager.subscribe()

    assert correlator.calls == [
        (
            "printer.objects.subscribe",
            {"objects": {"virtual_sdcard": None, "print_stats": None}},
        )
    ]
    assert response["id"] == 2
    assert manager.subscribed is True


@pytest.mark.asyncio
async def test_subscribe_copies_custom_objects():
    correlator = RecordingCorrelator()
    fields = ["state"]
    manager = SubscriptionManager(correlator, {"print_stats": fields, "webhooks": None})
    fields.append("filename")

    await manager.subscribe()

    assert correlator.calls[0][1] == {
        "objects": {"print_stats": ["state"], "webhooks": None}
    }


@pytest.mark.asyncio
async def test_subscribe_propagates_correlator_errors():
    manager = SubscriptionManager(
        RecordingCorrelator(error=RPCTimeoutError("printer.objects.subscribe", 2, 5.0))
    )

    with pytest.raises(RPCTimeoutError):
        await manager.subscribe()

    assert manager.subscribed is False


@pytest.mark.asyncio
async def test_subscribe_accepts_error_reply(caplog):
    error = {"code": 400, "message": "Invalid objects"}
    manager = SubscriptionManager(
        RecordingCorrelator(error=RPCError("printer.objects.subscribe", 2, error))
    )
    caplog.set_level("WARNING", logger="moonraker_notify.core.subscription")

    response = await manager.subscribe()

    assert response == {"id": 2, "error": error}
    assert manager.subscribed is True
    assert "Invalid objects" in caplog.text
