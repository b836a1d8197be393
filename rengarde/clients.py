"""Connected clients of the server and their lifetimes."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

Address = tuple[str, int]


@dataclass
class Client:
    """A client address with its last activity time and byte count."""

    addr: Address
    last_received_at: float = field(default_factory=time.monotonic)
    total_received_bytes: int = 0

    def update(self, bytes_received: int) -> None:
        self.last_received_at = time.monotonic()
        self.total_received_bytes += bytes_received


class ClientManager:
    """Tracks clients by address and drops those that go quiet."""

    def __init__(self, timeout_seconds: float) -> None:
        self.clients: dict[Address, Client] = {}
        self.timeout = float(timeout_seconds)

    def add_or_update_client(self, addr: Address, bytes_received: int) -> Client:
        client = self.clients.get(addr)
        if client is None:
            log.info("New client connected: '%s'", addr)
            client = Client(addr)
            self.clients[addr] = client
        else:
            client.update(bytes_received)
        return client

    def remove_client(self, addr: Address) -> None:
        self.clients.pop(addr, None)
        log.info("Client removed: '%s'", addr)

    def timed_out(self, now: float | None = None) -> list[Address]:
        """Addresses of clients silent for longer than the timeout."""
        now = time.monotonic() if now is None else now
        return [
            addr
            for addr, client in self.clients.items()
            if now - client.last_received_at > self.timeout
        ]

    def cleanup_timeout_clients(self, now: float | None = None) -> list[Address]:
        """Remove timed-out clients and return their addresses."""
        expired = self.timed_out(now)
        for addr in expired:
            log.warning("Client '%s' timed out", addr)
            self.remove_client(addr)
        return expired

    def client_count(self) -> int:
        return len(self.clients)