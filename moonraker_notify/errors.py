"""Exception hierarchy for moonraker-notify."""

from __future__ import annotations


class MoonrakerNotifyError(Exception):
    """Base class for all errors raised by this package."""


class ConfigLoadError(MoonrakerNotifyError):
    """Raised when the configuration file cannot be read or is invalid."""


class TransportError(MoonrakerNotifyError):
    """Raised when an HTTP or WebSocket exchange with Moonraker fails."""


class TransportConnectError(TransportError):
    """Raised when Moonraker is unreachable or the websocket cannot be opened."""


class SendError(TransportError):
    """Raised when a frame cannot be written to the websocket."""


class TokenMissingError(MoonrakerNotifyError):
    """Raised when the oneshot token response carries no token."""


class ParseError(MoonrakerNotifyError):
    """Raised when an inbound payload does not have the expected shape."""


class RPCTimeoutError(MoonrakerNotifyError):
    """Raised when no correlated response arrives within the RPC timeout."""

    def __init__(self, method: str, request_id: int, timeout: float) -> None:
        super().__init__(
            f"No response to {method} (id={request_id}) within {timeout:.1f}s"
        )
        self.method = method
        self.request_id = request_id
        self.timeout = timeout


class RPCError(MoonrakerNotifyError):
    """Raised when Moonraker answers a request with a JSON-RPC error object."""

    def __init__(self, method: str, request_id: int, error: object) -> None:
        message = error
        if isinstance(error, dict):
            message = error.get("message", error)
        super().__init__(f"{method} (id={request_id}) failed: {message}")
        self.method = method
        self.request_id = request_id
        self.error = error


class KlippyNotReadyError(MoonrakerNotifyError):
    """Raised when the readiness handshake ends without Klippy being ready."""
