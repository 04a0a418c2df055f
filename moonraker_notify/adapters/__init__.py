"""Adapter modules for external integrations."""

from .moonraker import (
    MoonrakerTransport,
    build_ws_url,
    check_connection,
    fetch_oneshot_token,
)

__all__ = [
    "MoonrakerTransport",
    "build_ws_url",
    "check_connection",
    "fetch_oneshot_token",
]
