"""TCP helpers: connecting, listening, framed sizes and error reporting."""

from __future__ import annotations

import ipaddress
import os
import socket
import struct

from .common import ErrorCode, TorrentError

_SIZE_FORMAT = struct.Struct("<Q")
SIZE_BYTES = _SIZE_FORMAT.size


def error_string(code: int) -> str:
    """Return the operating system's description of an errno value."""
    return os.strerror(code)


def _describe(exc: OSError) -> str:
    if exc.errno is not None:
        return error_string(exc.errno)
    return str(exc)


def _create_socket() -> socket.socket:
    try:
        return socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        raise TorrentError(ErrorCode.ERROR_SOCKET_CREATE, _describe(exc)) from exc


def connect_to_host(ip: str, port: int) -> socket.socket:
    """Open a TCP connection to an IPv4 address and port."""
    try:
        ipaddress.IPv4Address(ip)
    except ValueError:
        raise TorrentError(ErrorCode.ERROR_SOCKET_CONNECT, f"Invalid IP address: {ip}") from None

    sock = _create_socket()
    try:
        sock.connect((ip, port))
    except OSError as exc:
        sock.close()
        raise TorrentError(
            ErrorCode.ERROR_SOCKET_CONNECT,
            f"Failed to connect to {ip}:{port} - {_describe(exc)}",
        ) from exc
    return sock


def open_server(port: int, backlog: int = 5, host: str = "") -> socket.socket:
    """Create a listening TCP socket bound to ``host`` and ``port``."""
    sock = _create_socket()
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        raise TorrentError(
            ErrorCode.ERROR_SOCKET_BIND,
            f"Failed to bind socket to port {port} - {_describe(exc)}",
        ) from exc
    try:
        sock.listen(backlog)
    except OSError as exc:
        sock.close()
        raise TorrentError(ErrorCode.ERROR_SOCKET_LISTEN, _describe(exc)) from exc
    return sock


def accept_connection(server: socket.socket) -> tuple[socket.socket, str, int]:
    """Accept one client; return its socket, IP address and port."""
    try:
        client, (ip, port) = server.accept()
    except OSError as exc:
        raise TorrentError(ErrorCode.ERROR_SOCKET_ACCEPT, _describe(exc)) from exc
    return client, ip, port


def send_data(sock: socket.socket, data: bytes) -> None:
    """Send all of ``data``."""
    try:
        sock.sendall(data)
    except OSError as exc:
        raise TorrentError(
            ErrorCode.ERROR_SOCKET_CONNECT, f"Failed to send data: {_describe(exc)}"
        ) from exc


def receive_data(sock: socket.socket, length: int) -> bytes:
    """Receive at most ``length`` bytes; ``b""`` means the peer closed."""
    try:
        return sock.recv(length)
    except OSError as exc:
        raise TorrentError(
            ErrorCode.ERROR_SOCKET_CONNECT, f"Failed to receive data: {_describe(exc)}"
        ) from exc


def pack_size(value: int) -> bytes:
    """Encode a size as the 8-byte little-endian field used on the wire."""
    try:
        return _SIZE_FORMAT.pack(value)
    except struct.error as exc:
        raise ValueError(f"size out of range: {value}") from exc


def unpack_size(data: bytes) -> int:
    """Decode an 8-byte little-endian size field."""
    if len(data) != SIZE_BYTES:
        raise ValueError(f"size field must be {SIZE_BYTES} bytes, got {len(data)}")
    (value,) = _SIZE_FORMAT.unpack(data)
    return value


def close_socket(sock: socket.socket | None) -> None:
    """Close a socket if there is one, ignoring errors."""
    if sock is None:
        return
    try:
        sock.close()
    except OSError:
        pass