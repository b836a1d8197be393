"""Client entry point: reads its configuration and runs the multipath service."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import sys
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from .client_config import DEFAULT_CONFIG_PATH, ConfigError, apply_defaults, load_settings
from .service import Service, get_address_by_interface, list_interface_addresses
from .shared import init, print_header

log = logging.getLogger(__name__)

PKG_NAME = "client"
PKG_VERSION = "0.1.0"
RUNTIME = "asyncio"
LIST_INTERFACES_COMMAND = "list-interfaces"


def _parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"provided string was not `true` or `false`: {value!r}")


def format_interfaces(interfaces: Mapping[str, Iterable[str]]) -> str:
    """Render each interface with the address the client would send from."""
    lines: list[str] = []
    for name, addresses in interfaces.items():
        address = get_address_by_interface(addresses)
        lines += ["", name, f"  Address: {address if address is not None else ''}"]
    return "".join(f"{line}\n" for line in lines)


def list_interfaces() -> str:
    """Print the system's interfaces and their usable addresses; return the text printed."""
    interfaces = list_interface_addresses()
    text = format_interfaces(interfaces)
    sys.stdout.write(text)
    sys.stdout.flush()
    return text


def print_header_info() -> None:
    """Print the start-up banner, taking build details from the environment."""
    official = _parse_bool(os.environ.get("RENGARDE_OFFICIAL_BUILD", "false"))
    print_header(
        official,
        PKG_NAME,
        PKG_VERSION,
        os.environ.get("VERGEN_GIT_DESCRIBE", PKG_VERSION),
        os.environ.get("VERGEN_GIT_DIRTY", "false"),
        os.environ.get(
            "VERGEN_BUILD_TIMESTAMP", datetime.now(timezone.utc).isoformat(timespec="seconds")
        ),
        os.environ.get(
            "VERGEN_CARGO_TARGET_TRIPLE", f"{platform.machine() or 'unknown'}-{sys.platform}"
        ),
        RUNTIME,
    )


def main(argv: list[str] | None = None) -> int:
    """Run the client, or list interfaces when asked to."""
    args = sys.argv[1:] if argv is None else list(argv)
    config_path = args[0] if args else DEFAULT_CONFIG_PATH
    with init():
        try:
            print_header_info()
            if config_path == LIST_INTERFACES_COMMAND:
                list_interfaces()
                return 0
            settings = apply_defaults(load_settings(config_path))
        except (OSError, ConfigError, ValueError) as err:
            log.error("%s", err)
            return 1
        service = Service(settings.client)
        try:
            asyncio.run(service.run())
        except KeyboardInterrupt:
            log.info("ctrl + c received; shutting down...")
        except (OSError, ValueError) as err:
            log.error("%s", err)
            return 1
    return 0