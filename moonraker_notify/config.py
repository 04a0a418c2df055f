"""Configuration loader for moonraker-notify."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from . import constants
from .core.utils import deep_merge
from .errors import ConfigLoadError


@dataclass(slots=True)
class ServerConfig:
    address: str = constants.DEFAULT_MOONRAKER_HOST
    port: int = constants.DEFAULT_MOONRAKER_PORT

    @property
    def endpoint(self) -> str:
        """Return the ``host:port`` pair used to build Moonraker URLs."""

        host, sep, port = self.address.rpartition(":")
        if sep and host and port.isdigit():
            return self.address
        return f"{self.address}:{self.port}"


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class NotifyConfig:
    server: ServerConfig
    logging: LoggingConfig
    raw: Dict[str, Any]
    path: Path

    def as_dict(self) -> Dict[str, Any]:
        return {
            "server": {"address": self.server.address, "port": self.server.port},
            "logging": {
                "level": self.logging.level,
                "path": str(self.logging.path) if self.logging.path else None,
                "log_network": self.logging.log_network,
            },
        }


def _default_document() -> Dict[str, Any]:
    return {
        "server": {
            "address": f"{constants.DEFAULT_MOONRAKER_HOST}:{constants.DEFAULT_MOONRAKER_PORT}",
            "port": constants.DEFAULT_MOONRAKER_PORT,
        },
        "logging": {
            "level": "INFO",
            "path": str(constants.DEFAULT_LOG_PATH),
            "log_network": False,
        },
    }


def _read_document(config_path: Path) -> Dict[str, Any]:
    try:
        with config_path.open("r", encoding="utf-8") as stream:
            document = json.load(stream)
    except OSError as exc:
        raise ConfigLoadError(f"Cannot read {config_path}: {exc}") from exc
    except ValueError as exc:
        raise ConfigLoadError(f"Invalid JSON in {config_path}: {exc}") from exc

    if not isinstance(document, dict):
        raise ConfigLoadError(f"{config_path} must contain a JSON object")
    return document


def _section(document: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = document.get(name)
    if not isinstance(section, dict):
        raise ConfigLoadError(f"Section {name!r} must be a JSON object")
    return section


def _expect(section: str, key: str, value: Any, kind: type) -> Any:
    if kind is int and isinstance(value, bool):
        value = None
    if not isinstance(value, kind):
        raise ConfigLoadError(
            f"{section}.{key} must be of type {kind.__name__}, got {value!r}"
        )
    return value


def load_config(path: Optional[Path] = None) -> NotifyConfig:
    """Load configuration from disk, applying defaults where necessary.

    A missing file at the default location yields the defaults; a missing
    file that was asked for explicitly is an error.
    """

    config_path = path or constants.DEFAULT_CONFIG_PATH
    document = _default_document()

    if config_path.exists():
        deep_merge(document, _read_document(config_path))
    elif path is not None:
        raise ConfigLoadError(f"Configuration file {config_path} does not exist")

    server_section = _section(document, "server")
    logging_section = _section(document, "logging")

    server = ServerConfig(
        address=_expect("server", "address", server_section.get("address"), str),
        port=_expect("server", "port", server_section.get("port"), int),
    )
    if not server.address.strip():
        raise ConfigLoadError("server.address must not be empty")

    log_path = logging_section.get("path")
    if log_path is not None:
        log_path = Path(_expect("logging", "path", log_path, str)).expanduser()

    logging_config = LoggingConfig(
        level=_expect("logging", "level", logging_section.get("level"), str),
        path=log_path,
        log_network=_expect(
            "logging", "log_network", logging_section.get("log_network"), bool
        ),
    )

    return NotifyConfig(
        server=server,
        logging=logging_config,
        raw=document,
        path=config_path,
    )
