import io
import socket

import pytest

from minitorrent.common import ErrorCode, TorrentError, calculate_checksum
from minitorrent.fileutils import receive_header
from minitorrent.peer import Peer, main, parse_peer_address, parse_peer_list, strip_quotes
from minitorrent.tracker import Tracker


@pytest.fixture
def tracker():
    t = Tracker(port=0, host="127.0.0.1")
    t.start()
    yield t
    t.stop()


@pytest.fixture
def peer(tracker):
    p = Peer("127.0.0.1", tracker.address()[1])
    yield p
    p.stop_seeding()


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.mark.parametrize(
    "raw, expected",
    [('"a b"', "a b"), ('"', ""), ("abc", "abc"), ('"abc', "abc"), ('abc"', "abc")],
)
def test_strip_quotes(raw, expected):
    assert strip_quotes(raw) == expected


def test_parse_peer_list_empty_line():
    assert parse_peer_list("\n") == []


def test_parse_peer_list_entries_and_blanks():
    assert parse_peer_list("1.2.3.4:5;6.7.8.9:10;\n") == ["1.2.3.4:5", "6.7.8.9:10"]
    assert parse_peer_list("a;;b;\nrest") == ["a", "b"]


def test_parse_peer_address():
    assert parse_peer_address("127.0.0.1:9000") == ("127.0.0.1", 9000)


def test_parse_peer_address_without_colon():
    with pytest.raises(TorrentError) as info:
        parse_peer_address("nocolon")
    assert info.value.code == ErrorCode.ERROR_INVALID_INPUT


def test_parse_peer_address_bad_port():
    with pytest.raises(TorrentError) as info:
        parse_peer_address("host:abc")
    assert info.value.code == ErrorCode.ERROR_INVALID_INPUT


def test_register_and_get_peers(tracker, peer):
    peer.register_with_tracker("f.txt", 5000)
    assert tracker.get_peers("f.txt") == ["127.0.0.1:5000"]
    assert peer.get_peers_from_tracker("f.txt") == ["127.0.0.1:5000"]


def test_get_peers_unknown_file(peer):
    assert peer.get_peers_from_tracker("missing.bin") == []


def test_register_rejected_by_tracker(peer):
    with pytest.raises(TorrentError) as info:
        peer.register_with_tracker("", 5000)
    assert info.value.code == ErrorCode.ERROR_TRACKER_CONNECT


def test_register_without_tracker():
    lonely = Peer("127.0.0.1", _free_port())
    with pytest.raises(TorrentError) as info:
        lonely.register_with_tracker("f.txt", 5000)
    assert info.value.code == ErrorCode.ERROR_TRACKER_CONNECT


def test_seed_missing_file(peer, tmp_path):
    with pytest.raises(TorrentError) as info:
        peer.seed_file(tmp_path / "nope.bin", 0)
    assert info.value.code == ErrorCode.ERROR_FILE_OPEN
    assert peer.is_seeding() is False


def test_seed_and_download_round_trip(tracker, peer, tmp_path):
    payload = bytes(range(256)) * 12 + b"tail"
    source = tmp_path / "data.bin"
    source.write_bytes(payload)

    port = peer.seed_file(source, 0)
    assert peer.is_seeding() is True
    assert tracker.get_peers("data.bin") == [f"127.0.0.1:{port}"]

    dest = tmp_path / "copy.bin"
    received = Peer("127.0.0.1", tracker.address()[1]).download_file(
        "data.bin", dest, select=lambda peers: 0
    )
    assert received == len(payload)
    assert dest.read_bytes() == payload

    peer.stop_seeding()
    assert peer.is_seeding() is False


def test_download_without_peers(peer, tmp_path):
    with pytest.raises(TorrentError) as info:
        peer.download_file("absent.bin", tmp_path / "out.bin", select=lambda peers: 0)
    assert info.value.code == ErrorCode.ERROR_PEER_CONNECT


def test_download_invalid_index(peer, tmp_path):
    peer.register_with_tracker("x.bin", 5000)
    with pytest.raises(TorrentError) as info:
        peer.download_file("x.bin", tmp_path / "out.bin", select=lambda peers: len(peers))
    assert info.value.code == ErrorCode.ERROR_INVALID_INPUT


def test_download_non_numeric_selection(peer, tmp_path):
    peer.register_with_tracker("x.bin", 5000)
    with pytest.raises(TorrentError) as info:
        peer.download_file("x.bin", tmp_path / "out.bin", select=lambda peers: "abc")
    assert info.value.code == ErrorCode.ERROR_INVALID_INPUT


def test_handle_download_request_sends_header_and_data(tmp_path):
    payload = b"z" * 2100
    source = tmp_path / "up.bin"
    source.write_bytes(payload)
    server_side, client_side = socket.socketpair()
    with client_side:
        Peer().handle_download_request(server_side, source)
        size, checksum = receive_header(client_side)
        body = b""
        while chunk := client_side.recv(4096):
            body += chunk
    assert size == len(payload)
    assert checksum == calculate_checksum(source)
    assert body == payload


def test_main_menu_invalid_then_exit(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("9\nabc\n3\n"))
    assert main(["--tracker-ip", "127.0.0.1"]) == 0
    out = capsys.readouterr().out
    assert "Invalid option" in out
    assert "Please enter a number" in out
    assert "Goodbye!" in out


def test_main_rejects_low_port(monkeypatch, capsys, tmp_path):
    source = tmp_path / "f.bin"
    source.write_bytes(b"abc")
    monkeypatch.setattr("sys.stdin", io.StringIO(f"1\n{source}\n80\n3\n"))
    assert main([]) == 0
    assert "Port must be >= 1024." in capsys.readouterr().out