"""Server configuration: YAML parsing, defaults and validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "engarde.yml"
DEFAULT_CLIENT_TIMEOUT = 30
DEFAULT_WRITE_TIMEOUT = 10


class ConfigError(ValueError):
    """Raised when a configuration document is malformed."""


@dataclass(frozen=True)
class WireGuardConfig:
    """Timeouts used while relaying packets from WireGuard to clients."""

    client_timeout: timedelta
    write_timeout: timedelta

    @classmethod
    def from_values(cls, client_timeout_seconds: int, write_timeout_ms: int) -> "WireGuardConfig":
        if client_timeout_seconds < 0 or write_timeout_ms < 0:
            raise ValueError("timeouts must not be negative")
        return cls(
            client_timeout=timedelta(seconds=client_timeout_seconds),
            write_timeout=timedelta(milliseconds=write_timeout_ms),
        )


@dataclass(frozen=True)
class WebManager:
    listen_addr: str | None = None
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class ServerSettings:
    listen_addr: str
    dst_addr: str
    description: str | None = None
    # Seconds without traffic after which a client stops receiving packets.
    client_timeout: int | None = None
    # Socket write timeout in milliseconds; 0 disables it.
    write_timeout: int | None = None
    web_manager: WebManager | None = None
    wireguard: WireGuardConfig | None = None


@dataclass(frozen=True)
class Settings:
    server: ServerSettings


def _mapping(value: Any, where: str) -> dict:
    if not isinstance(value, dict):
        raise ConfigError(f"{where}: expected a mapping")
    return value


def _string(data: dict, key: str, where: str, *, required: bool = False) -> str | None:
    if key not in data or data[key] is None:
        if required:
            raise ConfigError(f"{where}: missing field '{key}'")
        return None
    value = data[key]
    if not isinstance(value, str):
        raise ConfigError(f"{where}.{key}: expected a string")
    return value


def _uint(data: dict, key: str, where: str, *, required: bool = False) -> int | None:
    if key not in data or data[key] is None:
        if required:
            raise ConfigError(f"{where}: missing field '{key}'")
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{where}.{key}: expected a non-negative integer")
    return value


def _duration(data: dict, key: str, where: str) -> timedelta:
    if key not in data:
        raise ConfigError(f"{where}: missing field '{key}'")
    raw = _mapping(data[key], f"{where}.{key}")
    secs = _uint(raw, "secs", f"{where}.{key}", required=True)
    nanos = _uint(raw, "nanos", f"{where}.{key}", required=True)
    return timedelta(seconds=secs, microseconds=nanos / 1000)


def _web_manager(value: Any) -> WebManager | None:
    if value is None:
        return None
    data = _mapping(value, "server.webManager")
    where = "server.webManager"
    return WebManager(
        listen_addr=_string(data, "listenAddr", where),
        username=_string(data, "username", where),
        password=_string(data, "password", where),
    )


def _wireguard(value: Any) -> WireGuardConfig | None:
    if value is None:
        return None
    data = _mapping(value, "server.wireguard")
    return WireGuardConfig(
        client_timeout=_duration(data, "client_timeout", "server.wireguard"),
        write_timeout=_duration(data, "write_timeout", "server.wireguard"),
    )


def parse_settings(text: str) -> Settings:
    """Parse a server configuration document."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise ConfigError(f"invalid YAML: {err}") from err
    root = _mapping(document, "configuration")
    if "server" not in root:
        raise ConfigError("configuration: missing field 'server'")
    data = _mapping(root["server"], "server")
    server = ServerSettings(
        description=_string(data, "description", "server"),
        listen_addr=_string(data, "listenAddr", "server", required=True),
        dst_addr=_string(data, "dstAddr", "server", required=True),
        client_timeout=_uint(data, "clientTimeout", "server"),
        write_timeout=_uint(data, "writeTimeout", "server"),
        web_manager=_web_manager(data.get("webManager")),
        wireguard=_wireguard(data.get("wireguard")),
    )
    return Settings(server=server)


def load_config(path: str | Path | None = None) -> Settings:
    """Read and parse the configuration file, ``engarde.yml`` by default."""
    text = Path(path if path is not None else DEFAULT_CONFIG_PATH).read_text(encoding="utf-8")
    settings = parse_settings(text)
    if settings.server.description is not None:
        log.info("%s", settings.server.description)
    return settings


def validate_settings(settings: Settings) -> Settings:
    """Fill in default timeouts and disable the unsupported write timeout."""
    server = settings.server
    if not server.client_timeout:
        log.info("Client timeout not set; setting to %ds.", DEFAULT_CLIENT_TIMEOUT)
        server = replace(server, client_timeout=DEFAULT_CLIENT_TIMEOUT)
    if server.write_timeout is None:
        log.info("Write timeout not set; setting to %dms.", DEFAULT_WRITE_TIMEOUT)
        server = replace(server, write_timeout=DEFAULT_WRITE_TIMEOUT)
    if server.write_timeout != 0:
        log.warning("Write timeout is not implemented yet: setting to 0 to disable!")
        server = replace(server, write_timeout=0)
    return replace(settings, server=server)