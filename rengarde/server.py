"""Server entry point: receives tunnel traffic from clients and relays WireGuard replies."""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import socket
import sys
from datetime import datetime, timezone
from pathlib import Path

from .clients import ClientManager
from .relay import _resolve, receive_from_client, receive_from_wireguard
from .server_config import ConfigError, Settings, load_config, validate_settings
from .shared import init, print_header

log = logging.getLogger(__name__)

PKG_NAME = "server"
PKG_VERSION = "0.1.0"
RUNTIME = "asyncio"
CLEANUP_INTERVAL = 5.0
WIREGUARD_BIND_ADDR = "0.0.0.0:0"


def _parse_bool(value: str) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"provided string was not `true` or `false`: {value!r}")


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


async def cleanup_loop(manager: ClientManager, interval: float = CLEANUP_INTERVAL) -> None:
    """Periodically drop clients that have gone quiet."""
    while True:
        await asyncio.sleep(interval)
        manager.cleanup_timeout_clients()


async def _bind_udp(addr: str) -> socket.socket:
    family, sockaddr = await _resolve(addr)
    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.setblocking(False)
        sock.bind(sockaddr)
    except OSError:
        sock.close()
        raise
    return sock


async def _client_side(manager, client_socket, wireguard_socket, wireguard_addr) -> None:
    try:
        await receive_from_client(manager, client_socket, wireguard_socket, wireguard_addr)
    except (OSError, ValueError) as err:
        log.warning("receive_from_client failed: %r", err)


async def run(settings: Settings) -> None:
    """Bind the sockets and relay traffic until a relay task fails or is cancelled."""
    server = settings.server
    if server.client_timeout is None or server.write_timeout is None:
        raise ValueError("settings must be validated before running")

    manager = ClientManager(server.client_timeout)
    with await _bind_udp(WIREGUARD_BIND_ADDR) as wireguard_socket:
        with await _bind_udp(server.listen_addr) as client_socket:
            log.info("Listening on: %s", server.listen_addr)
            if server.web_manager is not None:
                log.warning("Web manager is not implemented yet: %r", server.web_manager)

            tasks = [
                asyncio.create_task(
                    _client_side(manager, client_socket, wireguard_socket, server.dst_addr)
                ),
                asyncio.create_task(
                    receive_from_wireguard(
                        manager,
                        wireguard_socket,
                        client_socket,
                        server.client_timeout,
                        server.write_timeout,
                    )
                ),
                asyncio.create_task(cleanup_loop(manager)),
            ]
            try:
                await asyncio.gather(*tasks)
            finally:
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
            log.warning("All threads joined; exiting...")


def main(argv: list[str] | None = None) -> int:
    """Run the server with the configuration file named in ``argv``."""
    args = sys.argv[1:] if argv is None else argv
    config_path = Path(args[0]) if args else None
    with init():
        try:
            print_header_info()
            settings = validate_settings(load_config(config_path))
        except (OSError, ConfigError, ValueError) as err:
            log.error("%s", err)
            return 1
        try:
            asyncio.run(run(settings))
        except KeyboardInterrupt:
            log.info("interrupted; shutting down...")
            return 130
        except (OSError, ValueError) as err:
            log.error("%s", err)
            return 1
    return 0