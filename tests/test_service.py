import asyncio
import ipaddress
import socket

import psutil
import pytest

from rengarde.client_config import ClientSettings
from rengarde.service import (
    SendingRoutine,
    Service,
    get_address_by_interface,
    list_interface_addresses,
)


def _settings(**kwargs):
    return ClientSettings(listen_addr="127.0.0.1:0", dst_addr="127.0.0.1:9", **kwargs)


@pytest.fixture
def udp_socket():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.setblocking(False)
    yield sock
    sock.close()


@pytest.mark.parametrize(
    "addresses, expected",
    [
        (["fe80::1", "10.1.2.3"], "10.1.2.3"),
        (["127.0.0.1"], "127.0.0.1"),
        (["169.254.7.7"], "169.254.7.7"),
        (["224.0.0.1", "8.8.8.8"], "8.8.8.8"),
        (["not-an-ip", "192.168.1.20"], "192.168.1.20"),
    ],
)
def test_get_address_picks_first_usable_ipv4(addresses, expected):
    assert get_address_by_interface(addresses) == ipaddress.IPv4Address(expected)


@pytest.mark.parametrize("addresses", [[], ["::1"], ["224.0.0.1"], ["fe80::1", "239.1.1.1"]])
def test_get_address_without_usable_ipv4_is_none(addresses):
    assert get_address_by_interface(addresses) is None


def test_list_interface_addresses_matches_system():
    listed = list_interface_addresses()
    system = psutil.net_if_addrs()
    assert set(listed) == set(system)
    for name, addresses in listed.items():
        known = {entry.address for entry in system[name]}
        assert set(addresses) <= known


def test_stale_routines_keeps_unchanged_interface(udp_socket):
    service = Service(_settings())
    service.routines["eth0"] = SendingRoutine(
        "eth0", udp_socket, ("10.0.0.5", 0), ("127.0.0.1", 9)
    )
    assert service.stale_routines({"eth0": ["10.0.0.5"]}) == []


@pytest.mark.parametrize(
    "interfaces",
    [{}, {"eth0": []}, {"eth0": ["10.0.0.6"]}, {"eth0": ["fe80::1"]}],
)
def test_stale_routines_drops_gone_or_changed(udp_socket, interfaces):
    service = Service(_settings())
    service.routines["eth0"] = SendingRoutine(
        "eth0", udp_socket, ("10.0.0.5", 0), ("127.0.0.1", 9)
    )
    assert service.stale_routines(interfaces) == ["eth0"]


def test_stale_routines_drops_excluded(udp_socket):
    service = Service(_settings(excluded_interfaces=["eth0"]))
    service.routines["eth0"] = SendingRoutine(
        "eth0", udp_socket, ("10.0.0.5", 0), ("127.0.0.1", 9)
    )
    assert service.stale_routines({"eth0": ["10.0.0.5"]}) == ["eth0"]


def test_new_routine_starts_empty(udp_socket):
    routine = SendingRoutine("eth0", udp_socket, ("10.0.0.5", 0), ("127.0.0.1", 9))
    routine.record_received(42)
    routine.record_received(8)
    assert routine.total_received_bytes == 50
    assert routine.is_closing is False


@pytest.mark.asyncio
async def test_send_to_delivers_datagram(udp_socket):
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.setblocking(False)
    try:
        routine = SendingRoutine(
            "lo", udp_socket, ("127.0.0.1", 0), receiver.getsockname()
        )
        assert await routine.send_to(b"payload") is True
        loop = asyncio.get_running_loop()
        data, sender = await asyncio.wait_for(loop.sock_recvfrom(receiver, 1500), 5)
        assert data == b"payload"
        assert sender == udp_socket.getsockname()
    finally:
        receiver.close()


@pytest.mark.asyncio
async def test_send_to_on_closed_routine_fails(udp_socket):
    routine = SendingRoutine("lo", udp_socket, ("127.0.0.1", 0), ("127.0.0.1", 9))
    routine.close()
    assert routine.is_closing is True
    assert await routine.send_to(b"payload") is False


async def _wait_for(predicate):
    for _ in range(200):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return False


@pytest.mark.asyncio
async def test_run_binds_and_stops_on_shutdown():
    service = Service(_settings(excluded_interfaces=list(list_interface_addresses())))
    task = asyncio.create_task(service.run())
    assert await _wait_for(lambda: service.bound_address is not None)
    service.shutdown()
    await asyncio.wait_for(task, 5)
    assert service.bound_address[0] == "127.0.0.1"
    assert service.bound_address[1] > 0
    assert service.routines == {}


@pytest.mark.asyncio
async def test_run_remembers_wireguard_peer():
    service = Service(_settings(excluded_interfaces=list(list_interface_addresses())))
    task = asyncio.create_task(service.run())
    peer = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    peer.bind(("127.0.0.1", 0))
    try:
        assert await _wait_for(lambda: service.bound_address is not None)
        peer.sendto(b"handshake", service.bound_address)
        assert await _wait_for(lambda: service.source_addr == peer.getsockname())
    finally:
        service.shutdown()
        await asyncio.wait_for(task, 5)
        peer.close()
    assert service.source_addr == peer.getsockname()


@pytest.mark.asyncio
async def test_run_rejects_malformed_listen_address():
    service = Service(ClientSettings(listen_addr="nonsense", dst_addr="127.0.0.1:9"))
    with pytest.raises(ValueError):
        await service.run()