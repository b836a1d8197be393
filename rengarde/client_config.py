"""Client configuration: YAML parsing and defaults."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .server_config import ConfigError

log = logging.getLogger(__name__)

# Ethernet MTU payload: 1518-byte frame minus 18 bytes of untagged overhead.
BUFFER_SIZE = 1500

DEFAULT_CONFIG_PATH = "engarde.yml"
DEFAULT_WRITE_TIMEOUT = 10


@dataclass(frozen=True)
class WebManager:
    listen_addr: str | None = None
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class ClientSettings:
    listen_addr: str
    dst_addr: str
    excluded_interfaces: list[str] = field(default_factory=list)
    description: str | None = None
    write_timeout: int | None = None
    web_manager: WebManager | None = None


@dataclass(frozen=True)
class Settings:
    client: ClientSettings


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


def _uint(data: dict, key: str, where: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{where}.{key}: expected a non-negative integer")
    return value


def _string_list(data: dict, key: str, where: str) -> list[str]:
    if key not in data:
        raise ConfigError(f"{where}: missing field '{key}'")
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{where}.{key}: expected a list of strings")
    return list(value)


def _web_manager(value: Any) -> WebManager | None:
    if value is None:
        return None
    where = "client.webManager"
    data = _mapping(value, where)
    return WebManager(
        listen_addr=_string(data, "listenAddr", where),
        username=_string(data, "username", where),
        password=_string(data, "password", where),
    )


def parse_settings(text: str) -> Settings:
    """Parse a client configuration document."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise ConfigError(f"invalid YAML: {err}") from err
    root = _mapping(document, "configuration")
    if "client" not in root:
        raise ConfigError("configuration: missing field 'client'")
    data = _mapping(root["client"], "client")
    client = ClientSettings(
        description=_string(data, "description", "client"),
        listen_addr=_string(data, "listenAddr", "client", required=True),
        dst_addr=_string(data, "dstAddr", "client", required=True),
        write_timeout=_uint(data, "writeTimeout", "client"),
        excluded_interfaces=_string_list(data, "excludedInterfaces", "client"),
        web_manager=_web_manager(data.get("webManager")),
    )
    return Settings(client=client)


def load_settings(path: str | Path | None = None) -> Settings:
    """Read and parse the configuration file, ``engarde.yml`` by default."""
    text = Path(path if path is not None else DEFAULT_CONFIG_PATH).read_text(encoding="utf-8")
    settings = parse_settings(text)
    if settings.client.description is not None:
        log.info("%s", settings.client.description)
    return settings


def apply_defaults(settings: Settings) -> Settings:
    """Fill in the write timeout default, then disable it as unsupported."""
    client = settings.client
    if client.write_timeout is None:
        log.info("Write timeout not set; setting to %dms.", DEFAULT_WRITE_TIMEOUT)
        client = replace(client, write_timeout=DEFAULT_WRITE_TIMEOUT)
    if client.write_timeout != 0:
        log.warning("Write timeout is not implemented yet: setting to 0 to disable!")
        client = replace(client, write_timeout=0)
    return replace(settings, client=client)