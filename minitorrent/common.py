"""Shared constants, error codes, checksums, logging and the progress bar."""

from __future__ import annotations

import logging
import sys
import time
from enum import IntEnum
from pathlib import Path
from typing import TextIO

TRACKER_IP = "127.0.0.1"
TRACKER_PORT = 8000

CHUNK_SIZE = 1024
MAX_BUFFER_SIZE = 4096

_CHECKSUM_MODULUS = 0xFFFFFFFF


class ErrorCode(IntEnum):
    """Failure categories reported by the tracker and peers."""

    SUCCESS = 0
    ERROR_SOCKET_CREATE = 1
    ERROR_SOCKET_CONNECT = 2
    ERROR_SOCKET_BIND = 3
    ERROR_SOCKET_LISTEN = 4
    ERROR_SOCKET_ACCEPT = 5
    ERROR_FILE_OPEN = 6
    ERROR_FILE_READ = 7
    ERROR_FILE_WRITE = 8
    ERROR_TRACKER_CONNECT = 9
    ERROR_PEER_CONNECT = 10
    ERROR_INVALID_INPUT = 11
    ERROR_CHECKSUM_MISMATCH = 12


_ERROR_MESSAGES = {
    ErrorCode.SUCCESS: "Operation completed successfully",
    ErrorCode.ERROR_SOCKET_CREATE: "Failed to create socket",
    ErrorCode.ERROR_SOCKET_CONNECT: "Failed to connect to remote host",
    ErrorCode.ERROR_SOCKET_BIND: "Failed to bind socket to address",
    ErrorCode.ERROR_SOCKET_LISTEN: "Failed to listen on socket",
    ErrorCode.ERROR_SOCKET_ACCEPT: "Failed to accept connection",
    ErrorCode.ERROR_FILE_OPEN: "Failed to open file",
    ErrorCode.ERROR_FILE_READ: "Failed to read from file",
    ErrorCode.ERROR_FILE_WRITE: "Failed to write to file",
    ErrorCode.ERROR_TRACKER_CONNECT: "Failed to connect to tracker",
    ErrorCode.ERROR_PEER_CONNECT: "Failed to connect to peer",
    ErrorCode.ERROR_INVALID_INPUT: "Invalid user input",
    ErrorCode.ERROR_CHECKSUM_MISMATCH: "File checksum verification failed",
}


def error_message(code: int) -> str:
    """Return the human-readable description of an error code."""
    try:
        return _ERROR_MESSAGES[ErrorCode(code)]
    except ValueError:
        return "Unknown error"


class TorrentError(Exception):
    """An operation failed; ``code`` says which kind of failure it was."""

    def __init__(self, code: ErrorCode, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = error_message(code)
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def calculate_checksum(filepath: str | Path) -> str:
    """Return the 8-digit hex byte-sum checksum of a file, or "" if unreadable.

    Only complete CHUNK_SIZE blocks contribute to the sum; a trailing partial
    block is ignored, which keeps checksums compatible with existing peers.
    """
    try:
        handle = open(filepath, "rb")
    except OSError:
        return ""
    checksum = 0
    with handle:
        while len(block := handle.read(CHUNK_SIZE)) == CHUNK_SIZE:
            checksum = (checksum + sum(block)) % _CHECKSUM_MODULUS
    return f"{checksum:08x}"


logger = logging.getLogger("minitorrent")
logger.setLevel(logging.INFO)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "FATAL": logging.CRITICAL,
    "CRITICAL": logging.CRITICAL,
}
_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "FATAL",
}


class _Formatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        stamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        name = _LEVEL_NAMES.get(record.levelno, record.levelname)
        return f"[{stamp}] [{name}] {record.getMessage()}"


class _StdoutHandler(logging.Handler):
    """Writes to whatever ``sys.stdout`` is at the moment of logging."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            sys.stdout.write(self.format(record) + "\n")
            sys.stdout.flush()
        except Exception:
            self.handleError(record)


def configure_logging(level: int | str = logging.INFO) -> logging.Logger:
    """Set the package log level and make sure messages reach stdout."""
    if isinstance(level, str):
        try:
            resolved = _LEVELS[level.upper()]
        except KeyError:
            raise ValueError(f"unknown log level: {level!r}") from None
    elif level in _LEVEL_NAMES:
        resolved = level
    else:
        raise ValueError(f"unknown log level: {level!r}")

    logger.setLevel(resolved)
    if not any(isinstance(h, _StdoutHandler) for h in logger.handlers):
        handler = _StdoutHandler()
        handler.setFormatter(_Formatter())
        logger.addHandler(handler)
    return logger


class ProgressBar:
    """A one-line textual progress bar with a rough time estimate."""

    def __init__(self, total: int, width: int = 50, stream: TextIO | None = None) -> None:
        self.total = total
        self.width = width
        self._stream = stream
        self._last_progress = 0
        self._start = time.monotonic()

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def update(self, current: int) -> None:
        """Redraw the bar if the whole-percent value has grown."""
        if self.total == 0:
            return
        progress = current / self.total
        percent = int(progress * 100)
        if percent <= self._last_progress:
            return
        self._last_progress = percent

        filled = min(int(progress * self.width), self.width)
        bar = "=" * filled
        if filled < self.width:
            bar += ">" + " " * (self.width - filled - 1)

        elapsed = int(time.monotonic() - self._start)
        line = f"\r[{bar}] {percent}% "
        if elapsed > 0 and progress > 0:
            eta = elapsed / progress - elapsed
            line += f"ETA: {int(eta)}s"

        out = self.stream
        out.write(line)
        out.flush()

    def finish(self) -> None:
        """Draw the completed bar and end the line."""
        self.update(self.total)
        self.stream.write("\n")
        self.stream.flush()