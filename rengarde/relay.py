"""Packet relaying between tunnel clients and the local WireGuard endpoint."""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from datetime import timedelta

from .clients import Address, Client, ClientManager
from .server_config import WireGuardConfig

log = logging.getLogger(__name__)

# Ethernet MTU payload: 1518-byte frame minus 18 bytes of untagged overhead.
BUFFER_SIZE = 1500


async def _resolve(addr: str, family: int = 0) -> tuple[int, tuple]:
    """Resolve a ``host:port`` string to an address family and socket address."""
    host, sep, port_text = addr.rpartition(":")
    if not sep or not host:
        raise ValueError(f"invalid address {addr!r}: expected host:port")
    host = host.strip("[]")
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port in address {addr!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port out of range in address {addr!r}")
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, family=family, type=socket.SOCK_DGRAM)
    if not infos:
        raise OSError(f"no address found for {addr!r}")
    info_family, _, _, _, sockaddr = infos[0]
    return info_family, sockaddr


def handle_client_packet(manager: ClientManager, received_bytes: int, src_addr: Address) -> Client:
    """Record a packet from a client, registering the client if it is new."""
    log.debug("Received %d bytes from client '%s'", received_bytes, src_addr)
    return manager.add_or_update_client(src_addr, received_bytes)


def select_targets(
    manager: ClientManager,
    received_at: float,
    client_timeout: timedelta | float,
) -> tuple[list[Address], list[Address]]:
    """Split clients into those still live and those silent beyond the timeout."""
    timeout = (
        client_timeout.total_seconds()
        if isinstance(client_timeout, timedelta)
        else float(client_timeout)
    )
    targets: list[Address] = []
    expired: list[Address] = []
    for addr, client in manager.clients.items():
        if received_at - client.last_received_at > timeout:
            expired.append(addr)
        else:
            targets.append(addr)
    return targets, expired


async def receive_from_client(
    manager: ClientManager,
    client_socket: socket.socket,
    wireguard_socket: socket.socket,
    wireguard_addr: str,
) -> None:
    """Forward every datagram arriving from clients to the WireGuard address."""
    loop = asyncio.get_running_loop()
    _, target = await _resolve(wireguard_addr, wireguard_socket.family)
    while True:
        data, src_addr = await loop.sock_recvfrom(client_socket, BUFFER_SIZE)
        handle_client_packet(manager, len(data), src_addr)
        await loop.sock_sendto(wireguard_socket, data, target)
        log.debug("\tSent %d bytes to wireguard on '%s'", len(data), wireguard_addr)


async def receive_from_wireguard(
    manager: ClientManager,
    wireguard_socket: socket.socket,
    client_socket: socket.socket,
    client_timeout: int,
    write_timeout: int,
) -> None:
    """Fan every datagram from WireGuard out to all live clients."""
    config = WireGuardConfig.from_values(client_timeout, write_timeout)
    loop = asyncio.get_running_loop()
    while True:
        data = await loop.sock_recv(wireguard_socket, BUFFER_SIZE)
        received_at = time.monotonic()
        log.debug("Received %d bytes from wireguard", len(data))

        targets, drop_list = select_targets(manager, received_at, config.client_timeout)
        for addr in drop_list:
            log.warning("Client '%s' timed out", addr)

        for addr in targets:
            try:
                await loop.sock_sendto(client_socket, data, addr)
            except OSError:
                log.warning("Error writing to client '%s', terminating it", addr)
                drop_list.append(addr)
                continue
            log.debug("\tSent %d bytes to client '%s'", len(data), addr)

        for addr in drop_list:
            manager.clients.pop(addr, None)