"""File helpers and the framed file transfer used between peers."""

from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import BinaryIO, Iterator

from . import common
from .common import CHUNK_SIZE, ErrorCode, ProgressBar, TorrentError, logger
from .network import SIZE_BYTES, pack_size, receive_data, send_data, unpack_size

MAX_CHECKSUM_SIZE = 256


def file_exists(filepath: str | Path) -> bool:
    """Return True if the file can be opened for reading."""
    try:
        with open(filepath, "rb"):
            return True
    except OSError:
        return False


def get_file_size(filepath: str | Path) -> int:
    """Return the size of a file in bytes, or 0 if it cannot be read."""
    try:
        return os.stat(filepath).st_size
    except OSError:
        return 0


def calculate_checksum(filepath: str | Path) -> str:
    """Return the checksum that peers exchange for a file."""
    return common.calculate_checksum(filepath)


def get_filename(filepath: str) -> str:
    """Return the part of a path after its last '/' or '\\'."""
    cut = max(filepath.rfind("/"), filepath.rfind("\\"))
    return filepath[cut + 1:]


def read_chunks(file: BinaryIO, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield successive non-empty blocks of at most ``chunk_size`` bytes."""
    if file.closed:
        raise TorrentError(ErrorCode.ERROR_FILE_READ, "File not open for reading")
    while True:
        try:
            block = file.read(chunk_size)
        except (OSError, ValueError) as exc:
            raise TorrentError(ErrorCode.ERROR_FILE_READ, str(exc)) from exc
        if not block:
            return
        yield block


def write_chunk(file: BinaryIO, data: bytes) -> None:
    """Write one block to an open binary file."""
    if file.closed:
        raise TorrentError(ErrorCode.ERROR_FILE_WRITE, "File not open for writing")
    try:
        file.write(data)
    except (OSError, ValueError) as exc:
        raise TorrentError(ErrorCode.ERROR_FILE_WRITE, str(exc)) from exc


def _receive_exact(sock: socket.socket, length: int, what: str) -> bytes:
    parts = []
    remaining = length
    while remaining > 0:
        block = receive_data(sock, remaining)
        if not block:
            raise TorrentError(ErrorCode.ERROR_SOCKET_CONNECT, f"Failed to receive {what}")
        parts.append(block)
        remaining -= len(block)
    return b"".join(parts)


def send_header(sock: socket.socket, file_size: int, checksum: str) -> None:
    """Send the file size, the checksum length and the checksum."""
    encoded = checksum.encode("ascii")
    send_data(sock, pack_size(file_size))
    send_data(sock, pack_size(len(encoded)))
    send_data(sock, encoded)


def receive_header(sock: socket.socket) -> tuple[int, str]:
    """Receive a transfer header; return the file size and checksum."""
    file_size = unpack_size(_receive_exact(sock, SIZE_BYTES, "file size"))
    checksum_size = unpack_size(_receive_exact(sock, SIZE_BYTES, "checksum size"))
    if checksum_size >= MAX_CHECKSUM_SIZE:
        raise TorrentError(ErrorCode.ERROR_INVALID_INPUT, "Checksum size too large")
    raw = _receive_exact(sock, checksum_size, "checksum")
    return file_size, raw.decode("ascii", errors="replace")


def send_file(
    sock: socket.socket, filepath: str | Path, progress: ProgressBar | None = None
) -> int:
    """Send a file with its header; return the number of data bytes sent."""
    try:
        handle = open(filepath, "rb")
    except OSError as exc:
        logger.error("Failed to open file for sending: %s", filepath)
        raise TorrentError(ErrorCode.ERROR_FILE_OPEN, str(filepath)) from exc

    with handle:
        file_size = handle.seek(0, os.SEEK_END)
        handle.seek(0)
        send_header(sock, file_size, calculate_checksum(filepath))

        total_sent = 0
        for block in read_chunks(handle):
            send_data(sock, block)
            total_sent += len(block)
            if progress is not None:
                progress.update(total_sent)

    if progress is not None:
        progress.finish()
    return total_sent


def receive_file(
    sock: socket.socket,
    filepath: str | Path,
    file_size: int = 0,
    progress: ProgressBar | None = None,
) -> int:
    """Receive a file into ``filepath`` and verify it; return the bytes written.

    A ``file_size`` of 0 means the size announced by the sender is used.
    """
    try:
        handle = open(filepath, "wb")
    except OSError as exc:
        logger.error("Failed to open file for writing: %s", filepath)
        raise TorrentError(ErrorCode.ERROR_FILE_OPEN, str(filepath)) from exc

    with handle:
        announced, expected_checksum = receive_header(sock)
        if file_size == 0:
            file_size = announced

        total_received = 0
        while total_received < file_size:
            block = receive_data(sock, min(CHUNK_SIZE, file_size - total_received))
            if not block:
                logger.error("Failed to receive file chunk")
                raise TorrentError(ErrorCode.ERROR_SOCKET_CONNECT, "Failed to receive file chunk")
            write_chunk(handle, block)
            total_received += len(block)
            if progress is not None:
                progress.update(total_received)

    if progress is not None:
        progress.finish()

    if not verify_file_integrity(filepath, expected_checksum):
        raise TorrentError(ErrorCode.ERROR_CHECKSUM_MISMATCH, str(filepath))
    return total_received


def verify_file_integrity(filepath: str | Path, expected_checksum: str) -> bool:
    """Return True if the file's checksum matches the expected one."""
    actual = calculate_checksum(filepath)
    if actual != expected_checksum:
        logger.error("File integrity check failed: %s", filepath)
        logger.error("Expected checksum: %s", expected_checksum)
        logger.error("Actual checksum: %s", actual)
        return False
    logger.info("File integrity verified: %s", filepath)
    return True