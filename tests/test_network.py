import errno
import socket

import pytest

from minitorrent.common import ErrorCode, TorrentError
from minitorrent.network import (
    SIZE_BYTES,
    accept_connection,
    close_socket,
    connect_to_host,
    error_string,
    open_server,
    pack_size,
    receive_data,
    send_data,
    unpack_size,
)


@pytest.fixture
def server():
    srv = open_server(0, 5, "127.0.0.1")
    yield srv
    close_socket(srv)


@pytest.fixture
def connected(server):
    port = server.getsockname()[1]
    client = connect_to_host("127.0.0.1", port)
    accepted, ip, peer_port = accept_connection(server)
    yield client, accepted, ip, peer_port
    close_socket(client)
    close_socket(accepted)


def test_error_string_names_the_error():
    assert "No such file" in error_string(errno.ENOENT)


def test_pack_size_is_little_endian_eight_bytes():
    assert pack_size(1024) == b"\x00\x04\x00\x00\x00\x00\x00\x00"
    assert len(pack_size(0)) == SIZE_BYTES


@pytest.mark.parametrize("value", [0, 1, 255, 1024, 2**32, 2**64 - 1])
def test_size_round_trip(value):
    assert unpack_size(pack_size(value)) == value


def test_pack_size_rejects_out_of_range():
    with pytest.raises(ValueError):
        pack_size(-1)
    with pytest.raises(ValueError):
        pack_size(2**64)


def test_unpack_size_rejects_wrong_length():
    with pytest.raises(ValueError):
        unpack_size(b"abc")


def test_accept_reports_client_address(connected):
    client, _accepted, ip, peer_port = connected
    assert ip == "127.0.0.1"
    assert peer_port == client.getsockname()[1]


def test_send_and_receive(connected):
    client, accepted, _ip, _port = connected
    send_data(client, b"REGISTER file.txt 9000\n")
    assert receive_data(accepted, 4096) == b"REGISTER file.txt 9000\n"


def test_receive_respects_length(connected):
    client, accepted, _ip, _port = connected
    send_data(client, b"abcdef")
    first = receive_data(accepted, 2)
    assert first == b"ab"


def test_receive_after_peer_closes_is_empty(connected):
    client, accepted, _ip, _port = connected
    client.close()
    assert receive_data(accepted, 16) == b""


def test_connect_invalid_ip():
    with pytest.raises(TorrentError) as info:
        connect_to_host("not.an.ip", 8000)
    assert info.value.code is ErrorCode.ERROR_SOCKET_CONNECT
    assert "Invalid IP address: not.an.ip" in str(info.value)


def test_connect_refused():
    srv = open_server(0, 5, "127.0.0.1")
    port = srv.getsockname()[1]
    srv.close()
    with pytest.raises(TorrentError) as info:
        connect_to_host("127.0.0.1", port)
    assert info.value.code is ErrorCode.ERROR_SOCKET_CONNECT


def test_bind_conflict(server):
    port = server.getsockname()[1]
    with pytest.raises(TorrentError) as info:
        open_server(port, 5, "127.0.0.1")
    assert info.value.code is ErrorCode.ERROR_SOCKET_BIND


def test_accept_on_closed_server():
    srv = open_server(0, 5, "127.0.0.1")
    srv.close()
    with pytest.raises(TorrentError) as info:
        accept_connection(srv)
    assert info.value.code is ErrorCode.ERROR_SOCKET_ACCEPT


def test_send_and_receive_on_closed_socket_raise():
    a, b = socket.socketpair()
    b.close()
    a.close()
    with pytest.raises(TorrentError) as sent:
        send_data(a, b"x")
    assert sent.value.code is ErrorCode.ERROR_SOCKET_CONNECT
    with pytest.raises(TorrentError) as received:
        receive_data(a, 1)
    assert received.value.code is ErrorCode.ERROR_SOCKET_CONNECT


def test_close_socket_is_idempotent():
    a, b = socket.socketpair()
    close_socket(a)
    close_socket(a)
    close_socket(None)
    assert a.fileno() == -1
    b.close()