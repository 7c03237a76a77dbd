import socket
import time

import pytest

from pandactl.network import (
    MessageHeader,
    Network,
    NetworkException,
    ProtocolException,
)

HEADER = MessageHeader.SIZE


@pytest.fixture
def listener():
    server = socket.create_server(("127.0.0.1", 0))
    yield server
    server.close()


@pytest.fixture
def connection(listener):
    network = Network(
        "127.0.0.1", listener.getsockname()[1], tcp_timeout=2.0, udp_timeout=2.0
    )
    peer, _ = listener.accept()
    peer.settimeout(2.0)
    yield network, peer
    peer.close()
    network.close()


@pytest.fixture
def udp_client():
    client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    client.bind(("127.0.0.1", 0))
    client.settimeout(2.0)
    yield client
    client.close()


def recv_exact(sock, size):
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        assert chunk
        data += chunk
    return data


def send_response(peer, command, command_id, payload=b""):
    header = MessageHeader(command, command_id, HEADER + len(payload))
    peer.sendall(header.pack() + payload)


def test_header_wire_format():
    assert HEADER == 12
    assert MessageHeader(1, 2, 16).pack() == bytes.fromhex("010000000200000010000000")


def test_header_round_trip():
    header = MessageHeader(9, 123456, 4000)
    assert MessageHeader.unpack(header.pack()) == header
    assert MessageHeader.unpack(header.pack() + b"extra") == header


def test_header_unpack_too_short():
    with pytest.raises(ProtocolException):
        MessageHeader.unpack(b"\x00" * (HEADER - 1))


def test_connection_refused():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    with pytest.raises(NetworkException, match="Connection"):
        Network("127.0.0.1", port, tcp_timeout=1.0)


def test_udp_port_is_bound(connection):
    network, _ = connection
    assert 0 < network.udp_port < 65536


def test_send_request_assigns_increasing_ids(connection):
    network, peer = connection
    first = network.tcp_send_request(7, b"abc")
    second = network.tcp_send_request(7)
    assert first == 0
    assert second == first + 1
    data = recv_exact(peer, 2 * HEADER + 3)
    assert MessageHeader.unpack(data[:HEADER]) == MessageHeader(7, first, HEADER + 3)
    assert data[HEADER:HEADER + 3] == b"abc"
    assert MessageHeader.unpack(data[HEADER + 3:]) == MessageHeader(7, second, HEADER)


def test_blocking_receive_returns_payload(connection):
    network, peer = connection
    command_id = network.tcp_send_request(3, b"")
    recv_exact(peer, HEADER)
    send_response(peer, 3, command_id, b"response-data")
    assert network.tcp_blocking_receive_response(command_id) == b"response-data"


def test_blocking_receive_handles_reordered_responses(connection):
    network, peer = connection
    first = network.tcp_send_request(1)
    second = network.tcp_send_request(2)
    recv_exact(peer, 2 * HEADER)
    send_response(peer, 2, second, b"second")
    send_response(peer, 1, first, b"first")
    assert network.tcp_blocking_receive_response(first) == b"first"
    assert network.tcp_blocking_receive_response(second) == b"second"


def test_receive_response_is_non_blocking(connection):
    network, peer = connection
    command_id = network.tcp_send_request(5)
    recv_exact(peer, HEADER)
    handled = []
    assert network.tcp_receive_response(command_id, handled.append) is False
    assert handled == []

    send_response(peer, 5, command_id, b"ok")
    deadline = time.monotonic() + 2.0
    result = False
    while not result and time.monotonic() < deadline:
        result = network.tcp_receive_response(command_id, handled.append)
        time.sleep(0.005)
    assert result is True
    assert handled == [b"ok"]
    assert network.tcp_receive_response(command_id, handled.append) is False


def test_header_with_too_small_size_raises(connection):
    network, peer = connection
    command_id = network.tcp_send_request(4)
    recv_exact(peer, HEADER)
    peer.sendall(MessageHeader(4, command_id, HEADER - 1).pack())
    with pytest.raises(ProtocolException):
        network.tcp_blocking_receive_response(command_id)


def test_blocking_receive_raises_when_server_closes(connection):
    network, peer = connection
    command_id = network.tcp_send_request(4)
    peer.close()
    with pytest.raises(NetworkException):
        network.tcp_blocking_receive_response(command_id)


def test_throw_if_connection_closed(connection):
    network, peer = connection
    peer.close()
    with pytest.raises(NetworkException, match="closed"):
        deadline = time.monotonic() + 2.0
        while time.monotonic() < deadline:
            network.tcp_throw_if_connection_closed()
            time.sleep(0.01)


def test_udp_round_trip(connection, udp_client):
    network, _ = connection
    udp_client.sendto(b"x" * 8, ("127.0.0.1", network.udp_port))
    assert network.udp_blocking_receive(8) == b"x" * 8
    network.udp_send(b"reply")
    data, _ = udp_client.recvfrom(64)
    assert data == b"reply"


def test_udp_wrong_size_raises(connection, udp_client):
    network, _ = connection
    udp_client.sendto(b"abc", ("127.0.0.1", network.udp_port))
    with pytest.raises(ProtocolException, match="size"):
        network.udp_blocking_receive(8)


def test_udp_receive_non_blocking(connection, udp_client):
    network, _ = connection
    assert network.udp_receive(4) is None
    udp_client.sendto(b"abcd", ("127.0.0.1", network.udp_port))
    deadline = time.monotonic() + 2.0
    data = None
    while data is None and time.monotonic() < deadline:
        data = network.udp_receive(4)
        time.sleep(0.005)
    assert data == b"abcd"
    assert network.udp_receive(4) is None


def test_udp_receive_ignores_short_datagram(connection, udp_client):
    network, _ = connection
    udp_client.sendto(b"ab", ("127.0.0.1", network.udp_port))
    time.sleep(0.05)
    assert network.udp_receive(4) is None


def test_udp_timeout(listener):
    with Network(
        "127.0.0.1", listener.getsockname()[1], tcp_timeout=2.0, udp_timeout=0.05
    ) as network:
        with pytest.raises(NetworkException, match="UDP receive"):
            network.udp_blocking_receive(4)


def test_udp_send_without_server_address(connection):
    network, _ = connection
    with pytest.raises(NetworkException, match="UDP send"):
        network.udp_send(b"data")


def test_operations_fail_after_close(listener):
    with Network("127.0.0.1", listener.getsockname()[1], tcp_timeout=2.0) as network:
        pass
    with pytest.raises(NetworkException):
        network.tcp_send_request(1, b"x")


def test_keepalive_disabled_connects(listener):
    with Network(
        "127.0.0.1",
        listener.getsockname()[1],
        tcp_timeout=2.0,
        tcp_keepalive=(False, 0, 0, 0),
    ) as network:
        peer, _ = listener.accept()
        try:
            command_id = network.tcp_send_request(2, b"zz")
            data = recv_exact(peer, HEADER + 2)
        finally:
            peer.close()
    assert MessageHeader.unpack(data) == MessageHeader(2, command_id, HEADER + 2)