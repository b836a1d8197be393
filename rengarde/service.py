"""Client service: spreads WireGuard traffic over every usable network interface."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import psutil

from .client_config import BUFFER_SIZE, ClientSettings
from .relay import _resolve

log = logging.getLogger(__name__)

INTERFACE_POLL_INTERVAL = 1.0
UNSPECIFIED_ADDR = ("0.0.0.0", 0)

IpLike = str | ipaddress.IPv4Address | ipaddress.IPv6Address


def get_address_by_interface(addresses: Iterable[IpLike]) -> ipaddress.IPv4Address | None:
    """Return the first usable IPv4 address of an interface.

    Private, loopback, link-local and public IPv4 addresses are all accepted;
    multicast and IPv6 addresses are passed over, as is anything unparsable.
    """
    for raw in addresses:
        try:
            ip = ipaddress.ip_address(raw)
        except ValueError:
            continue
        if isinstance(ip, ipaddress.IPv4Address) and not ip.is_multicast:
            return ip
    return None


def list_interface_addresses() -> dict[str, list[str]]:
    """Map every network interface name to its IPv4 and IPv6 addresses."""
    wanted = (socket.AF_INET, socket.AF_INET6)
    return {
        name: [entry.address for entry in entries if entry.family in wanted]
        for name, entries in psutil.net_if_addrs().items()
    }


def _bind_device(sock: socket.socket, ifname: str) -> None:
    option = getattr(socket, "SO_BINDTODEVICE", None)
    if option is None:
        raise OSError(f"binding to interface '{ifname}' is not supported on this platform")
    sock.setsockopt(socket.SOL_SOCKET, option, ifname.encode())


@dataclass(eq=False)
class SendingRoutine:
    """One outgoing path: a socket bound to an interface, aimed at the server."""

    ifname: str
    src_socket: socket.socket
    src_addr: tuple[str, int]
    dst_addr: tuple
    last_received_at: float = field(default_factory=time.monotonic)
    total_received_bytes: int = 0
    is_closing: bool = False

    def __post_init__(self) -> None:
        log.info(
            "\tAdded interface '%s' to sending routines (src %s, dst %s)",
            self.ifname,
            self.src_addr,
            self.dst_addr,
        )

    def record_received(self, received_bytes: int) -> None:
        self.last_received_at = time.monotonic()
        self.total_received_bytes += received_bytes

    async def send_to(self, data: bytes) -> bool:
        """Send a datagram to the server; return False if the path has failed."""
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendto(self.src_socket, data, self.dst_addr)
        except (OSError, ValueError) as err:
            log.warning(
                "Error writing to client '%s', terminating it: %r", self.dst_addr, err
            )
            return False
        log.debug(
            "\tSent %d bytes on iface %s to client '%s'", len(data), self.ifname, self.dst_addr
        )
        return True

    def close(self) -> None:
        self.is_closing = True
        self.src_socket.close()
        log.debug(
            "\tRemoved interface '%s' from sending routines (src %s, dst %s)",
            self.ifname,
            self.src_addr,
            self.dst_addr,
        )


class Service:
    """Relays datagrams between the local WireGuard peer and the server over all interfaces."""

    def __init__(self, settings: ClientSettings) -> None:
        self.settings = settings
        self.routines: dict[str, SendingRoutine] = {}
        self.source_addr: tuple = UNSPECIFIED_ADDR
        self.bound_address: tuple | None = None
        self._shutdown = asyncio.Event()
        self._write_back_tasks: dict[str, asyncio.Task] = {}

    def stale_routines(self, interfaces: Mapping[str, Iterable[IpLike]]) -> list[str]:
        """Names of routines whose interface is excluded, gone, addressless or readdressed."""
        stale: list[str] = []
        for name, routine in self.routines.items():
            if name in self.settings.excluded_interfaces:
                log.warning("Interface '%s' is excluded; removing it", name)
                stale.append(name)
                continue
            if name not in interfaces:
                log.warning("Interface '%s' no longer exists; removing it", name)
                stale.append(name)
                continue
            address = get_address_by_interface(interfaces[name])
            if address is None:
                log.warning("Interface '%s' has no address; removing it", name)
                stale.append(name)
            elif address != ipaddress.ip_address(routine.src_addr[0]):
                log.info("Interface '%s' address changed; re-creating it", name)
                stale.append(name)
        return stale

    def shutdown(self) -> None:
        """Ask a running service to stop."""
        self._shutdown.set()

    async def run(self) -> None:
        """Listen for WireGuard and relay until shut down or a worker stops."""
        family, sockaddr = await _resolve(self.settings.listen_addr)
        wireguard_socket = socket.socket(family, socket.SOCK_DGRAM)
        tasks: list[asyncio.Task] = []
        try:
            wireguard_socket.setblocking(False)
            wireguard_socket.bind(sockaddr)
            self.bound_address = wireguard_socket.getsockname()
            log.info("Listening on: %s", self.settings.listen_addr)
            if self.settings.web_manager is not None:
                log.warning("Web manager is not implemented yet: %r", self.settings.web_manager)

            workers = {
                asyncio.create_task(
                    self._update_available_interfaces(wireguard_socket)
                ): "update_available_interfaces",
                asyncio.create_task(
                    self._receive_from_wireguard(wireguard_socket)
                ): "receive_from_wireguard",
            }
            stop = asyncio.create_task(self._shutdown.wait())
            tasks = [*workers, stop]
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task, name in workers.items():
                if task in done:
                    log.warning("%s thread closed", name)
        finally:
            log.debug("shutdown starting; sending cancel")
            self._shutdown.set()
            write_backs = list(self._write_back_tasks.values())
            for name in list(self.routines):
                self._remove_routine(name)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, *write_backs, return_exceptions=True)
            wireguard_socket.close()
            log.debug("shutdown finished; cancel returned")

    def _remove_routine(self, name: str) -> None:
        routine = self.routines.pop(name, None)
        task = self._write_back_tasks.pop(name, None)
        if routine is None:
            return
        if task is not None and not task.done():
            # Close the socket only once the reader waiting on it has let go.
            task.cancel()
            task.add_done_callback(lambda _task: routine.close())
        else:
            routine.close()

    async def _update_available_interfaces(self, wireguard_socket: socket.socket) -> None:
        try:
            while True:
                log.debug("Checking available interfaces...")
                interfaces = list_interface_addresses()
                for name in self.stale_routines(interfaces):
                    self._remove_routine(name)

                for name, addresses in interfaces.items():
                    if name in self.settings.excluded_interfaces or name in self.routines:
                        continue
                    source_ip = get_address_by_interface(addresses)
                    if source_ip is None:
                        continue
                    try:
                        await self._create_send_thread(name, source_ip, wireguard_socket)
                    except (OSError, ValueError) as err:
                        log.warning(
                            "Failed to create send thread for interface '%s': %r", name, err
                        )
                        continue
                    log.debug("Created send thread for interface '%s'", name)

                log.debug("Checking available interfaces finished; sleeping...")
                try:
                    await asyncio.wait_for(self._shutdown.wait(), INTERFACE_POLL_INTERVAL)
                except TimeoutError:
                    continue
                log.debug("Shutdown signal received; closing update_available_interfaces thread")
                return
        except OSError as err:
            log.warning("update_available_interfaces thread failed: %r", err)

    async def _create_send_thread(
        self,
        name: str,
        source_ip: ipaddress.IPv4Address,
        wireguard_socket: socket.socket,
    ) -> None:
        log.info("New interface '%s' with IP '%s', adding it", name, source_ip)
        _, dst_addr = await _resolve(self.settings.dst_addr, socket.AF_INET)
        log.debug("\tDestination address: '%s'", dst_addr)

        src_addr = (str(source_ip), 0)
        src_socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            src_socket.setblocking(False)
            src_socket.bind(src_addr)
            log.debug("\tBound udp socket to '%s'", src_addr)
            if name:
                _bind_device(src_socket, name)
                log.debug("\tBound udp socket to interface '%s'", name)
        except OSError:
            src_socket.close()
            raise

        if name in self.routines:
            src_socket.close()
            raise RuntimeError(f"Interface '{name}' already existed when we tried to add it")

        self.routines[name] = SendingRoutine(name, src_socket, src_addr, dst_addr)
        self._write_back_tasks[name] = asyncio.create_task(
            self._wireguard_write_back(name, wireguard_socket)
        )
        log.debug("\tStarted wireguard_write_back thread for interface '%s'", name)

    async def _wireguard_write_back(self, name: str, wireguard_socket: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        try:
            while True:
                routine = self.routines.get(name)
                if routine is None:
                    raise LookupError(f"Interface '{name}' not found")
                if routine.is_closing:
                    log.warning("Interface '%s' is closing; closing thread", name)
                    return
                log.debug("Waiting for data from interface '%s'", name)
                try:
                    data, _ = await loop.sock_recvfrom(routine.src_socket, BUFFER_SIZE)
                except OSError as err:
                    log.warning("Error receiving from interface '%s': %r", name, err)
                    routine.is_closing = True
                    continue
                log.debug("Received %d bytes from interface '%s'", len(data), name)
                routine.record_received(len(data))
                await loop.sock_sendto(wireguard_socket, data, self.source_addr)
                log.debug("\tSent %d bytes to wireguard", len(data))
        except (OSError, LookupError) as err:
            log.warning("wireguard_write_back thread failed: %r", err)
        finally:
            log.debug("wireguard_write_back thread closed: '%s'", name)

    async def _receive_from_wireguard(self, wireguard_socket: socket.socket) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                data, src_addr = await loop.sock_recvfrom(wireguard_socket, BUFFER_SIZE)
            except OSError as err:
                log.warning("Error receiving from wireguard: %r", err)
                await asyncio.sleep(0)
                continue
            self.source_addr = src_addr
            log.debug("Received %d bytes from wireguard on '%s'", len(data), src_addr)
            log.debug("\tSending to %d clients", len(self.routines))

            drop_list = [
                name
                for name, routine in list(self.routines.items())
                if not await routine.send_to(data)
            ]
            for name in drop_list:
                self._remove_routine(name)
            log.debug("Sent to %d clients", len(self.routines))