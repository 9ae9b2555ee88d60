import pytest

from pkce_flow.errors import PortExhausted, PortUnavailable
from pkce_flow.ports import PortAllocator
from tests.flow_helpers import _reserve_ports


def test_default_candidates() -> None:
    assert PortAllocator().candidates == tuple(range(8888, 8898))


def test_allocate_returns_first_free_candidate() -> None:
    held = _reserve_ports(3)
    ports = [sock.getsockname()[1] for sock in held]
    held[1].close()
    held[2].close()

    try:
        assert PortAllocator(ports).allocate() == ports[1]
    finally:
        held[0].close()


def test_allocate_releases_the_port() -> None:
    held = _reserve_ports(1)
    port = held[0].getsockname()[1]
    held[0].close()
    allocator = PortAllocator([port])

    assert allocator.allocate() == port
    assert allocator.allocate() == port


def test_allocate_exhausted_when_all_taken() -> None:
    held = _reserve_ports(3)
    ports = [sock.getsockname()[1] for sock in held]

    try:
        with pytest.raises(PortExhausted, match="No available ports found") as info:
            PortAllocator(ports).allocate()
    finally:
        for sock in held:
            sock.close()

    assert info.value.candidates == tuple(ports)


def test_bind_listener_reports_taken_port() -> None:
    held = _reserve_ports(1)
    port = held[0].getsockname()[1]

    try:
        with pytest.raises(PortUnavailable) as info:
            PortAllocator([port]).bind_listener(port)
    finally:
        held[0].close()

    assert info.value.port == port


def test_bind_listener_returns_listening_socket() -> None:
    held = _reserve_ports(1)
    port = held[0].getsockname()[1]
    held[0].close()

    sock = PortAllocator([port]).bind_listener(port)
    try:
        assert sock.getsockname() == ("127.0.0.1", port)
    finally:
        sock.close()
