"""Constants used across the moonraker-notify package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "moonraker-notify"
DEFAULT_CONFIG_FILENAME = "config.json"
DEFAULT_CONFIG_PATH = Path(DEFAULT_CONFIG_FILENAME)

DEFAULT_LOG_PATH = Path(f"{APP_NAME}.log")

DEFAULT_MOONRAKER_HOST = "127.0.0.1"
DEFAULT_MOONRAKER_PORT = 7125

ONESHOT_TOKEN_PATH = "/access/oneshot_token"
WEBSOCKET_PATH = "/websocket"

JSONRPC_VERSION = "2.0"
METHOD_SERVER_INFO = "server.info"
METHOD_OBJECTS_SUBSCRIBE = "printer.objects.subscribe"
METHOD_NOTIFY_STATUS_UPDATE = "notify_status_update"

HTTP_TIMEOUT_SECONDS = 10.0
RPC_TIMEOUT_SECONDS = 5.0
STARTUP_RETRY_DELAY_SECONDS = 10.0
CLOSE_TIMEOUT_SECONDS = 1.0
